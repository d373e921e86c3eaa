"""
Application Configuration

Loads environment variables and provides typed settings
for the application. Uses python-dotenv to load from .env file.

APNs signing identity is exposed two ways: as raw module constants
(for diagnostics and tests) and as an immutable APNsSigningConfig
value built by load_apns_config(), which every push component
receives explicitly.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from mindboat_push.core.errors import ConfigurationError

# Load .env file from the project root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)

# --- App Settings ---
PROJECT_NAME = "MindBoat Push"
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Supabase ---
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

# --- APNs ---
APNS_TEAM_ID: str = os.getenv("APNS_TEAM_ID", "")
APNS_KEY_ID: str = os.getenv("APNS_KEY_ID", "")
# Inline .p8 contents: full PEM (escaped newlines allowed) or bare base64
APNS_AUTH_KEY: str = os.getenv("APNS_AUTH_KEY") or os.getenv("APNS_PRIVATE_KEY", "")
APNS_BUNDLE_ID: str = os.getenv("APNS_BUNDLE_ID", "")
APNS_PRODUCTION: bool = os.getenv("APNS_PRODUCTION", "false").lower() == "true"
APNS_REQUEST_TIMEOUT_SECONDS: float = float(
    os.getenv("APNS_REQUEST_TIMEOUT_SECONDS", "10")
)

# --- Queue processing ---
PUSH_BATCH_SIZE: int = int(os.getenv("PUSH_BATCH_SIZE", "100"))
PUSH_DISPATCH_INTERVAL_MS: int = int(os.getenv("PUSH_DISPATCH_INTERVAL_MS", "50"))
# Empty means no deadline; otherwise the batch stops between items after N seconds
PUSH_BATCH_DEADLINE_SECONDS: float | None = (
    float(os.environ["PUSH_BATCH_DEADLINE_SECONDS"])
    if os.getenv("PUSH_BATCH_DEADLINE_SECONDS")
    else None
)

# --- Upstash QStash (scheduler webhook) ---
QSTASH_CURRENT_SIGNING_KEY: str = os.getenv("QSTASH_CURRENT_SIGNING_KEY", "")
QSTASH_NEXT_SIGNING_KEY: str = os.getenv("QSTASH_NEXT_SIGNING_KEY", "")


# ===================================================================
# APNs Signing Configuration
# ===================================================================

@dataclass(frozen=True)
class APNsSigningConfig:
    """
    Immutable APNs provider identity.

    Built once per invocation from deployment configuration and passed
    into the token signer, dispatch client, and queue processor. An
    empty team id, key id, private key, or bundle id raises
    ConfigurationError at construction.
    """
    team_id: str
    key_id: str
    private_key: str
    bundle_id: str
    use_production: bool = False

    def __post_init__(self):
        missing = missing_apns_settings(
            team_id=self.team_id,
            key_id=self.key_id,
            private_key=self.private_key,
            bundle_id=self.bundle_id,
        )
        if missing:
            raise ConfigurationError(
                f"Incomplete APNs identity. Missing: {', '.join(missing)}",
                missing=missing,
            )

    def __repr__(self) -> str:
        # Never leak the private key into logs or tracebacks
        return (
            f"APNsSigningConfig(team_id={self.team_id!r}, key_id={self.key_id!r}, "
            f"bundle_id={self.bundle_id!r}, use_production={self.use_production})"
        )


def missing_apns_settings(
    *,
    team_id: str | None = None,
    key_id: str | None = None,
    private_key: str | None = None,
    bundle_id: str | None = None,
) -> list[str]:
    """Return the names of APNs environment variables that are empty."""
    values = {
        "APNS_TEAM_ID": APNS_TEAM_ID if team_id is None else team_id,
        "APNS_KEY_ID": APNS_KEY_ID if key_id is None else key_id,
        "APNS_AUTH_KEY": APNS_AUTH_KEY if private_key is None else private_key,
        "APNS_BUNDLE_ID": APNS_BUNDLE_ID if bundle_id is None else bundle_id,
    }
    return [name for name, value in values.items() if not value]


def load_apns_config() -> APNsSigningConfig:
    """
    Build the APNs signing configuration from the environment.

    All four identity fields are required. The engine refuses to operate
    with a partial identity rather than failing item by item later.

    Raises:
        ConfigurationError: If any of team id, key id, private key, or
            bundle id is missing. The error carries the missing names.
    """
    missing = missing_apns_settings()
    if missing:
        raise ConfigurationError(
            f"APNs not configured. Missing: {', '.join(missing)}. "
            f"Set them in your .env file at: {_env_path}",
            missing=missing,
        )
    return APNsSigningConfig(
        team_id=APNS_TEAM_ID,
        key_id=APNS_KEY_ID,
        private_key=APNS_AUTH_KEY,
        bundle_id=APNS_BUNDLE_ID,
        use_production=APNS_PRODUCTION,
    )


def is_apns_configured() -> bool:
    """Check if every APNs identity field is present, without raising."""
    return not missing_apns_settings()


# ===================================================================
# Supabase / QStash
# ===================================================================

def validate_supabase_config() -> bool:
    """Check that all required Supabase credentials are present and non-empty."""
    missing = []
    if not SUPABASE_URL:
        missing.append("SUPABASE_URL")
    if not SUPABASE_ANON_KEY:
        missing.append("SUPABASE_ANON_KEY")
    if not SUPABASE_SERVICE_ROLE_KEY:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise EnvironmentError(
            f"Missing required Supabase environment variables: {', '.join(missing)}. "
            f"Please fill in your .env file at: {_env_path}"
        )
    return True


def is_qstash_configured() -> bool:
    """True when at least one QStash signing key is available."""
    return bool(QSTASH_CURRENT_SIGNING_KEY or QSTASH_NEXT_SIGNING_KEY)
