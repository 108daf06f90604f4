from brokerdesk.models.organization import Organization  # noqa: F401
from brokerdesk.models.user import User  # noqa: F401
from brokerdesk.models.policy import Policy  # noqa: F401
from brokerdesk.models.application import Application  # noqa: F401
from brokerdesk.models.dependent import Dependent  # noqa: F401
from brokerdesk.models.client_assignment import ClientAssignment  # noqa: F401
from brokerdesk.models.access_request import AccessRequest  # noqa: F401
from brokerdesk.models.points import PointsTransaction  # noqa: F401
from brokerdesk.models.reward import Reward, RewardRedemption  # noqa: F401
from brokerdesk.models.referral import ReferralCode, ReferralSignup  # noqa: F401
from brokerdesk.models.achievement import UserAchievement  # noqa: F401
