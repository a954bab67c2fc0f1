"""Bootstrap do container de DI (kink) para o hub de atendimento."""
from kink import di
from .settings import Settings
from .logging import configure_logging, get_logger
from .db import create_session_factory
from ..connectors.broadcast import HttpBroadcaster
from ..connectors.whatsapp.cloud_api_adapter import WhatsAppCloudAdapter
from ..tasks.registry import build_registry

def bootstrap_di(settings: Settings | None = None, session_factory=None) -> None:
    settings = settings or Settings()
    configure_logging(settings.log_level)
    di[Settings] = settings
    di["logger"] = get_logger()
    factory = session_factory or create_session_factory(settings.database_url)
    # kink trata valores chamáveis como definição lazy: o sessionmaker vai embrulhado
    di["session_factory"] = lambda _di: factory
    di[WhatsAppCloudAdapter] = WhatsAppCloudAdapter(settings)
    di["broadcaster"] = HttpBroadcaster(settings)
    di["task_registry"] = build_registry(settings)
