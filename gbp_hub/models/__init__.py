from gbp_hub.models.base import Base  # noqa: F401

from gbp_hub.models.organization import Organization  # noqa: F401
from gbp_hub.models.user import User  # noqa: F401
from gbp_hub.models.api_key import ApiKey  # noqa: F401
from gbp_hub.models.organization_credential import OrganizationCredential  # noqa: F401
from gbp_hub.models.business_profile import BusinessProfile  # noqa: F401
from gbp_hub.models.sync_run import SyncRun  # noqa: F401
from gbp_hub.models.response_template import ResponseTemplate  # noqa: F401
from gbp_hub.models.review import Review, ReviewResponse  # noqa: F401
from gbp_hub.models.activity_log import ActivityLog  # noqa: F401
from gbp_hub.models.post_template import PostTemplate  # noqa: F401
from gbp_hub.models.post import Post  # noqa: F401
from gbp_hub.models.business_insight import BusinessInsight  # noqa: F401
