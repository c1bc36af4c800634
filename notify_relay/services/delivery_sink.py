import re
from abc import ABC, abstractmethod
from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from notify_relay.core.config import Settings
from notify_relay.core.exceptions import SinkDeliveryError, SinkUnreachableError
from notify_relay.core.logging import get_logger

logger = get_logger(__name__)

PROCEDURE_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_$#]*(\.[A-Za-z][A-Za-z0-9_$#]*){0,2}$")

PING_QUERY = "SELECT 1 FROM DUAL"

SEND_NOTIFICATION_BLOCK = """declare
  nResult Number;
  vTextSMS VARCHAR2(4000) := :text_sms;
  vSystemID VARCHAR2(128) := :system_id;
  vType VARCHAR2(128) := :message_type;
  vMsidn VARCHAR2(20) := :msisdn;
begin
  nResult := {procedure}(pTextSMS => vTextSMS, pSystemID => vSystemID, pType => vType, pMsidn => vMsidn);
end;"""


class DeliverySink(ABC):
    """Downstream delivery target for decoded notifications."""

    @abstractmethod
    async def ping(self):
        """Raise SinkUnreachableError when the sink cannot take deliveries."""

    @abstractmethod
    async def send(self, body: str, destination: str):
        """Deliver one notification; raise SinkDeliveryError on failure."""

    async def close(self):
        pass


class OracleProcedureSink(DeliverySink):
    """
    Delivers notifications by calling a stored procedure over SQLAlchemy.

    The procedure is called with the message text, a fixed system id, a
    fixed message type and the destination number.
    """

    def __init__(self, engine: AsyncEngine, procedure: str, system_id: str, message_type: str):
        if not PROCEDURE_NAME.match(procedure):
            raise ValueError(f"Invalid procedure name: {procedure!r}")
        self.engine = engine
        self.procedure = procedure
        self.system_id = system_id
        self.message_type = message_type
        self._statement = text(SEND_NOTIFICATION_BLOCK.format(procedure=procedure))

    @staticmethod
    def build_url(settings: Settings) -> URL:
        return URL.create(
            "oracle+oracledb",
            username=settings.ORACLE_USER,
            password=settings.ORACLE_PASSWORD,
            host=settings.ORACLE_HOST,
            port=settings.ORACLE_PORT,
            query={"service_name": settings.ORACLE_SID},
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "OracleProcedureSink":
        max_idle = min(settings.ORACLE_MAX_IDLE_CONNECTIONS, settings.ORACLE_MAX_OPEN_CONNECTIONS)
        engine = create_async_engine(
            cls.build_url(settings),
            pool_size=max_idle,
            max_overflow=settings.ORACLE_MAX_OPEN_CONNECTIONS - max_idle,
            pool_pre_ping=True,
            echo=settings.DEBUG,
        )
        return cls(
            engine,
            procedure=settings.ORACLE_PROCEDURE,
            system_id=settings.ORACLE_SYSTEM_ID,
            message_type=settings.ORACLE_MESSAGE_TYPE,
        )

    async def ping(self):
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text(PING_QUERY))
        except (SQLAlchemyError, OSError) as e:
            raise SinkUnreachableError(f"Oracle connection error: {e}") from e
        logger.debug("Oracle connection established")

    async def send(self, body: str, destination: str):
        params = {
            "text_sms": body,
            "system_id": self.system_id,
            "message_type": self.message_type,
            "msisdn": destination,
        }
        try:
            async with self.engine.begin() as conn:
                await conn.execute(self._statement, params)
        except (SQLAlchemyError, OSError) as e:
            raise SinkDeliveryError(f"Query execution error: {e}", {"destination": destination}) from e
        logger.debug("Query executed", destination=destination)

    async def close(self):
        await self.engine.dispose()
        logger.info("Oracle connections closed")


class LogSink(DeliverySink):
    """Writes deliveries to the log instead of a database."""

    async def ping(self):
        return None

    async def send(self, body: str, destination: str):
        logger.info("Notification delivered", destination=destination, body=body)


def create_sink(settings: Settings) -> DeliverySink:
    if settings.SINK_BACKEND == "log":
        return LogSink()
    return OracleProcedureSink.from_settings(settings)
