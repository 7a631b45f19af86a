"""
Configuration module for the Order Reconciliation service
Environment-agnostic: Works locally, in Docker, and on Google Cloud
Loads environment variables and validates configuration
"""
import os
import tempfile
from pathlib import Path
from dotenv import load_dotenv

# Get project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent

# Load environment variables from .env file (if exists - local dev only)
env_file = PROJECT_ROOT / '.env'
if env_file.exists():
    load_dotenv(env_file)

# ═══════════════════════════════════════════════════════════════════
# ENVIRONMENT DETECTION
# ═══════════════════════════════════════════════════════════════════

def detect_environment() -> str:
    """
    Detect which environment we're running in

    Returns:
        'cloud_run', 'kubernetes', 'docker', or 'local'
    """
    # Cloud Run sets K_SERVICE
    if os.getenv('K_SERVICE'):
        return 'cloud_run'

    # Kubernetes sets KUBERNETES_SERVICE_HOST
    if os.getenv('KUBERNETES_SERVICE_HOST'):
        return 'kubernetes'

    # Docker typically has /.dockerenv file
    if Path('/.dockerenv').exists():
        return 'docker'

    if os.getenv('GOOGLE_CLOUD_PROJECT') or os.getenv('GCP_PROJECT'):
        return 'cloud_run'

    return 'local'

RUNTIME_ENVIRONMENT = detect_environment()

# ═══════════════════════════════════════════════════════════════════
# CREDENTIAL RESOLUTION - Firebase service account
# ═══════════════════════════════════════════════════════════════════

_credentials_path = None  # Lazy loaded

def resolve_credentials() -> str:
    """
    Resolve Firebase service-account credentials from multiple sources.
    Priority order:
    1. Local file (FIREBASE_CREDENTIALS_FILE env var or default path)
    2. JSON string in environment variable (FIREBASE_CREDENTIALS_JSON)
    3. Application Default Credentials (for Workload Identity)

    Returns:
        Path to credentials JSON file (may be temp file for JSON string sources)
        None if using Application Default Credentials
    """
    creds_file = os.getenv('FIREBASE_CREDENTIALS_FILE')
    if creds_file:
        if not os.path.isabs(creds_file):
            creds_file = str(PROJECT_ROOT / creds_file)
        if os.path.exists(creds_file):
            print(f"[CONFIG] Using credentials file: {creds_file}")
            return creds_file

    default_path = PROJECT_ROOT / 'config' / 'firebase-credentials.json'
    if default_path.exists():
        print(f"[CONFIG] Using default credentials file: {default_path}")
        return str(default_path)

    # JSON string in environment variable (Cloud Run with secrets)
    creds_json = os.getenv('FIREBASE_CREDENTIALS_JSON')
    if creds_json:
        temp_path = Path(tempfile.gettempdir()) / 'order_recon_credentials.json'
        temp_path.write_text(creds_json)
        print("[CONFIG] Using credentials from environment variable (FIREBASE_CREDENTIALS_JSON)")
        return str(temp_path)

    if RUNTIME_ENVIRONMENT in ('cloud_run', 'kubernetes'):
        print("[CONFIG] Using Application Default Credentials (Workload Identity)")
        return None  # Signal to use ADC

    raise ValueError(
        "No valid credentials source found. Set one of:\n"
        "  - FIREBASE_CREDENTIALS_FILE (path to JSON file)\n"
        "  - FIREBASE_CREDENTIALS_JSON (JSON string)\n"
        "  - Place firebase-credentials.json in config/ folder"
    )

def get_credentials_path():
    """Get credentials path (lazy loaded)"""
    global _credentials_path
    if _credentials_path is None:
        _credentials_path = resolve_credentials()
    return _credentials_path

# ═══════════════════════════════════════════════════════════════════
# WRITABLE PATHS - Handle containerized environments
# ═══════════════════════════════════════════════════════════════════

def get_writable_path(folder_name: str) -> str:
    """Get a writable path that works in all environments"""
    env_path = os.getenv(folder_name.upper() + '_FOLDER')
    if env_path:
        if os.path.isabs(env_path):
            path = Path(env_path)
        else:
            path = PROJECT_ROOT / env_path
    else:
        path = PROJECT_ROOT / folder_name

    # In containers, /app might be read-only; use /tmp as fallback
    if not path.exists():
        try:
            path.mkdir(parents=True, exist_ok=True)
        except (PermissionError, OSError):
            path = Path(tempfile.gettempdir()) / 'order_recon' / folder_name
            path.mkdir(parents=True, exist_ok=True)

    return str(path)

# ═══════════════════════════════════════════════════════════════════
# CONFIGURATION VALUES
# ═══════════════════════════════════════════════════════════════════

# Firebase Realtime Database
FIREBASE_DATABASE_URL = os.getenv('FIREBASE_DATABASE_URL', '')
ORDERS_PATH = os.getenv('ORDERS_PATH', 'order_management/master_recon_file').strip('/')

# Pagination
BROWSE_PAGE_SIZE = int(os.getenv('BROWSE_PAGE_SIZE', '100'))
FACET_PAGE_SIZE = int(os.getenv('FACET_PAGE_SIZE', '50'))

# Ingestion
DEFAULT_ORDER_TYPE = os.getenv('DEFAULT_ORDER_TYPE', 'RECONCILIATION')
ALLOWED_UPLOAD_FORMATS = os.getenv('ALLOWED_UPLOAD_FORMATS', 'xlsx,xls').split(',')
MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', '20'))

# Monitoring Configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_DIR = os.getenv('LOG_DIR', 'logs')
LOG_FILE_MAX_MB = int(os.getenv('LOG_FILE_MAX_MB', '10'))
LOG_FILE_BACKUP_COUNT = int(os.getenv('LOG_FILE_BACKUP_COUNT', '5'))

# Fields with a database index (".indexOn" rule) usable for ordering or exact match
RECENCY_FIELD = 'OrderDate'
SEARCHABLE_FIELDS = ['OrderNumber', 'Material Number', 'SalesDocument']

# Status facets accepted by the listing filters
STATUS_OPTIONS = [
    'Shipped',
    'Canceled',
    'Duplicate',
    'PA',
    'Not shipped',
]

# ═══════════════════════════════════════════════════════════════════
# REST API (FastAPI + Swagger + JWT Auth)
# ═══════════════════════════════════════════════════════════════════

API_PORT = int(os.getenv('API_PORT', '8000'))
API_HOST = os.getenv('API_HOST', '0.0.0.0')

# Cloud Run sets PORT to the single port it routes traffic to
_cloud_run_port = os.getenv('PORT')
if _cloud_run_port:
    API_PORT = int(_cloud_run_port)

# JWT configuration (tokens are issued by the identity provider)
API_JWT_SECRET = os.getenv('API_JWT_SECRET', '')
API_JWT_ALGORITHM = os.getenv('API_JWT_ALGORITHM', 'HS256')
API_JWT_EXPIRY_MINUTES = int(os.getenv('API_JWT_EXPIRY_MINUTES', '30'))

# CORS configuration (comma-separated origins)
API_CORS_ORIGINS = os.getenv('API_CORS_ORIGINS', 'http://localhost:3000').split(',')


def validate_config():
    """Validate that all required configuration is present"""
    errors = []

    print(f"[CONFIG] Runtime environment: {RUNTIME_ENVIRONMENT}")

    if not FIREBASE_DATABASE_URL:
        errors.append("FIREBASE_DATABASE_URL is not set")

    if not API_JWT_SECRET:
        errors.append("API_JWT_SECRET is not set")

    if BROWSE_PAGE_SIZE < 1 or FACET_PAGE_SIZE < 1:
        errors.append("BROWSE_PAGE_SIZE and FACET_PAGE_SIZE must be positive")

    try:
        creds_path = get_credentials_path()
        if creds_path and not os.path.exists(creds_path):
            errors.append(f"Firebase credentials file not found: {creds_path}")
    except ValueError as e:
        errors.append(str(e))

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(errors))

    return True


if __name__ == "__main__":
    try:
        validate_config()
        print("[OK] Configuration validated successfully")
    except ValueError as e:
        print(f"[FAIL] Configuration validation failed:\n{e}")
