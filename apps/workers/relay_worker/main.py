"""
Relay Worker Entrypoint
- Consumes `relay.request` from Kafka (sent by the chat gateway) and answers via Redis Streams.
- Queries run through the assistant CLI with per-user conversation continuity.
- Utility requests (system stats, logs, processes) share the same process runner.
- Graceful shutdown on SIGINT/SIGTERM.
"""
# main.py
import asyncio
import logging
import signal
import sys
from logging import getLogger

from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError
from redis.asyncio import Redis

from relay_worker.application.continuity import make_strategy
from relay_worker.application.dto.requests import RelayRequest
from relay_worker.application.handlers.on_relay_request import RelayRequestHandler
from relay_worker.application.handlers.request_scheduler import RequestScheduler
from relay_worker.application.services.assistant_executor import AssistantExecutor
from relay_worker.application.services.session_manager import SessionManager
from relay_worker.application.services.system_tools import SystemTools
from relay_worker.infrastructure.di import make_invoker, make_session_store, shutdown_session_store
from relay_worker.infrastructure.stream.stream_service import StreamService
from relay_worker.settings import Settings

settings = Settings()

log = getLogger('RelayWorker')

LOG_LEVEL = settings.LOG_LEVEL
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname).1s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)

# Tone down noisy third‑party loggers
for noisy in ("aiokafka", "asyncio", "asyncpg", "redis"):
    logging.getLogger(noisy).setLevel(settings.NOISY_LEVEL)

RELAY_REQ_TOPIC = "relay.request"

shutdown_event = asyncio.Event()


async def main():
    """
    Main async loop.
    - Loads stored sessions, builds the executor with the configured continuity strategy.
    - Initializes Kafka consumer and Redis client.
    - Hands each request to the scheduler (per-user order, global concurrency cap).
    """
    store = await make_session_store(settings)
    session_manager = SessionManager(store, settings.MAX_MESSAGES_PER_SESSION)
    await session_manager.initialize()

    invoker = make_invoker(settings)
    strategy = make_strategy(
        settings.CONTINUITY_MODE,
        session_manager,
        context_turns=settings.CONTEXT_TURNS,
        seed_from_history=settings.SEED_RESUME_FROM_HISTORY,
    )
    executor = AssistantExecutor(
        invoker,
        session_manager,
        strategy,
        work_dir=settings.WORK_DIR,
        cli=settings.CLI,
    )
    tools = SystemTools(invoker, work_dir=settings.WORK_DIR, timeout_ms=settings.SHELL_TIMEOUT_MS)
    handler = RelayRequestHandler(
        executor=executor,
        session_manager=session_manager,
        tools=tools,
        allowed_user_id=settings.ALLOWED_USER_ID,
    )

    log.info("🔍 Checking for assistant CLI (%s)...", settings.CLI.bin)
    if await executor.check_cli_availability():
        log.info("✅ Assistant CLI is available")
    else:
        log.warning("⚠️ Assistant CLI not found. Queries will fail until it is installed.")

    log.info("📋 Working directory: %s", settings.WORK_DIR)
    log.info("📋 Continuity mode: %s", settings.CONTINUITY_MODE.value)
    if settings.ALLOWED_USER_ID is None:
        log.warning("⚠️ ALLOWED_USER_ID is not set; every sender is served")

    consumer = AIOKafkaConsumer(
        RELAY_REQ_TOPIC,
        bootstrap_servers=settings.KAFKA_BOOTSTRAP,
        group_id="relay-workers",
        retry_backoff_ms=500,
        enable_auto_commit=True,
        auto_offset_reset="earliest"
    )
    redis = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    stream_service = StreamService(redis)
    scheduler = RequestScheduler(
        handler,
        stream_service.make_job_publisher,
        max_concurrent=settings.MAX_CONCURRENT_REQUESTS,
    )

    await consumer.start()
    log.info("🏁 Worker started. Press Ctrl+C to stop.")

    async def shutdown():
        log.info("🧹 Shutting down gracefully...")
        shutdown_event.set()
        await consumer.stop()
        await scheduler.drain()
        await redis.aclose()
        await shutdown_session_store(store)
        log.info("✅ Worker stopped cleanly.")

    shutdown_task: asyncio.Task | None = None

    def request_shutdown() -> asyncio.Task:
        nonlocal shutdown_task
        if shutdown_task is None:
            shutdown_task = asyncio.create_task(shutdown())
        return shutdown_task

    # 🛑 Register SIGINT/SIGTERM handlers for graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, request_shutdown)

    try:
        async for msg in consumer:
            if shutdown_event.is_set():
                break

            value = msg.value
            if value is None:
                log.error("❌ Received Kafka message with empty value: key=%s, topic=%s, partition=%s, offset=%s",
                          msg.key, msg.topic, msg.partition, msg.offset)
                continue
            try:
                req = RelayRequest.model_validate_json(value.decode())
            except (ValidationError, UnicodeDecodeError) as e:
                log.error("❌ bad payload: %s", e)
                continue

            scheduler.submit(req)

    finally:
        await request_shutdown()


def run():
    asyncio.run(main())


# Run the worker
if __name__ == "__main__":
    run()
