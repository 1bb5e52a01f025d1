# Import models here so Alembic can discover metadata.
from reflist.models.account import Account  # noqa: F401
from reflist.models.participant import Participant  # noqa: F401
from reflist.models.participant_account import ParticipantAccount  # noqa: F401
from reflist.models.workspace import Workspace  # noqa: F401
from reflist.models.workspace_membership import WorkspaceMembership  # noqa: F401

# Commission ledger
from reflist.models.reward_policy import RewardPolicy  # noqa: F401
from reflist.models.link import Link, LinkSplitRecipient  # noqa: F401
from reflist.models.earning import Earning  # noqa: F401
from reflist.models.earning_split import EarningSplit  # noqa: F401
from reflist.models.earning_audit_entry import EarningAuditEntry  # noqa: F401
from reflist.models.phone_verification_token import PhoneVerificationToken  # noqa: F401
