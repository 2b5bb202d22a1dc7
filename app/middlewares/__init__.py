from .request_id_middleware import *
from .cron_auth import *

__all__ = [
    "RequestIDMiddleware",
    "CronSecretBearer",
    "require_cron_secret",
]
