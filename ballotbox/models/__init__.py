from .user import User  # noqa: F401
from .token_blocklist import TokenBlocklist  # noqa: F401
from .voter import Voter  # noqa: F401
from .party import Party  # noqa: F401
from .ballot_token import BallotToken  # noqa: F401
from .vote import Vote  # noqa: F401
from .print_batch import PrintBatch  # noqa: F401
from .election_setting import ElectionSetting  # noqa: F401
from .rate_limit_counter import RateLimitCounter  # noqa: F401
from .audit_log import AuditLog  # noqa: F401

# Import ALL models so SQLAlchemy registers them

__all__ = [
    "User",
    "TokenBlocklist",
    "Voter",
    "Party",
    "BallotToken",
    "Vote",
    "PrintBatch",
    "ElectionSetting",
    "RateLimitCounter",
    "AuditLog",
]
