from functools import lru_cache

from orderhub import config
from orderhub.broker.connection import BrokerConnection
from orderhub.broker.consumer import QueueConsumer
from orderhub.broker.messages import Queues
from orderhub.broker.publisher import QueuePublisher
from orderhub.crm.client import CRMClient
from orderhub.erp.document import DocumentBuilder
from orderhub.erp.gateway import ERPGateway
from orderhub.orchestrator import OrderOrchestrator
from orderhub.security import CredentialValidator


@lru_cache
def get_orchestrator() -> OrderOrchestrator:
    return OrderOrchestrator(
        validator=CredentialValidator(config.API_KEYS),
        publisher=QueuePublisher(BrokerConnection(config.RABBIT_URL)),
        erp=ERPGateway(
            url=config.ERP_URL,
            builder=DocumentBuilder(currency=config.ERP_CURRENCY),
            timeout=config.ERP_TIMEOUT,
        ),
    )


def build_crm_consumer() -> QueueConsumer:
    # own connection: a consumer holds its channel for its whole lifetime
    return QueueConsumer(
        queue_name=Queues.ORDERS_CREATED,
        adapter=CRMClient(
            url=config.CRM_URL,
            access_token=config.CRM_ACCESS_TOKEN,
            timeout=config.CRM_TIMEOUT,
        ),
        broker=BrokerConnection(config.RABBIT_URL),
        max_retries=config.MAX_RETRIES,
        reconnect_delay=config.RECONNECT_DELAY,
        base_retry_ttl_ms=config.BASE_RETRY_TTL_MS,
        max_retry_ttl_ms=config.MAX_RETRY_TTL_MS,
    )


def close_resources():
    if get_orchestrator.cache_info().currsize:
        orchestrator = get_orchestrator()
        orchestrator.close()
        orchestrator.erp.close()
        orchestrator.publisher.broker.close()
        get_orchestrator.cache_clear()
