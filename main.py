# main.py
import argparse
import asyncio
import logging
import sys

from core.settings import settings
from core.logging import setup_logging

from storage.db import DB
from storage.mirror import SqliteMirror
from storage.namespace import NamespaceStore
from storage.reminders import DraftCalendarQueue, SqliteReminderStore
from storage.usage import TokenUsageLedger

from services.openai_client import OpenAIClient
from services.transcription import TranscriptionService
from services.embeddings import EmbeddingService
from services.vector_store import VectorStoreClient

from domain.clock import system_clock
from domain.intent.classifier import IntentClassifier
from domain.answer.synthesizer import ResponseSynthesizer

from orchestrator.events import EventBus
from orchestrator.router import IntentRouter

from adapters.console.dev_runner import DevConsoleRunner, describe


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Personal memory assistant pipeline")
    parser.add_argument("text", nargs="*", help="utterance to handle")
    parser.add_argument("--audio", help="path to a voice recording to transcribe and handle")
    parser.add_argument("--language", default=settings.LANGUAGE, help="ISO-639-1 hint, e.g. en")
    parser.add_argument("--dev", action="store_true", help="run the canned sample utterances")
    parser.add_argument("--usage", action="store_true", help="print accumulated token usage and exit")
    return parser.parse_args(argv)


async def app(argv=None) -> int:
    args = parse_args(argv)

    # Logging
    setup_logging(settings.LOG_LEVEL, json_mode=settings.is_prod, diag=settings.is_diag)
    log = logging.getLogger("main")

    # --- DB + repositories ---
    db = DB(settings.DB_PATH)
    await db.connect()
    ledger = TokenUsageLedger(db)
    mirror = SqliteMirror(db)
    namespace = await NamespaceStore(db).get_or_create()

    if args.usage:
        usage = await ledger.read()
        print(f"openai tokens: {usage.openai_tokens}")
        print(f"pinecone read units: {usage.pinecone_read_units}")
        print(f"pinecone write units: {usage.pinecone_write_units}")
        await db.close()
        return 0

    # --- Services ---
    tz = settings.tz()
    clock = system_clock(tz)
    openai = OpenAIClient(
        settings.OPENAI_API_KEY,
        settings.OPENAI_BASE_URL,
        timeout=settings.HTTP_TIMEOUT_SEC,
    )
    vector_store = VectorStoreClient(
        settings.PINECONE_API_KEY,
        settings.PINECONE_HOST,
        namespace,
        api_version=settings.PINECONE_API_VERSION,
        timeout=settings.HTTP_TIMEOUT_SEC,
        mirror=mirror,
        ledger=ledger,
    )
    router = IntentRouter(
        IntentClassifier(openai, model=settings.CHAT_MODEL, clock=clock, ledger=ledger),
        EmbeddingService(openai, model=settings.EMBEDDING_MODEL, timeout=settings.REQUEST_TIMEOUT_SEC, ledger=ledger),
        vector_store,
        ResponseSynthesizer(
            openai,
            model=settings.CHAT_MODEL,
            min_score=settings.MIN_MATCH_SCORE,
            max_matches=settings.MAX_CONTEXT_MATCHES,
            clock=clock,
            ledger=ledger,
        ),
        SqliteReminderStore(db),
        DraftCalendarQueue(db),
        transcriber=TranscriptionService(
            openai, model=settings.TRANSCRIPTION_MODEL, timeout=settings.REQUEST_TIMEOUT_SEC
        ),
        bus=EventBus(),
        clock=clock,
        tz=tz,
        top_k=settings.QUERY_TOP_K,
    )

    log.info("Pipeline ready (namespace=%s)", namespace)
    try:
        if args.dev:
            await DevConsoleRunner(lambda text: router.handle_transcript(text, language=args.language)).start()
            return 0
        if args.audio:
            run = await router.handle_audio(args.audio, language=args.language)
        elif args.text:
            run = await router.handle_transcript(" ".join(args.text), language=args.language)
        else:
            log.error("Nothing to do: pass text, --audio or --dev")
            return 2
        print(describe(run))
        return 1 if run.failed else 0
    finally:
        # Graceful shutdown
        for closer in (openai.aclose, vector_store.aclose, db.close):
            try:
                await closer()
            except Exception:
                log.exception("Shutdown step failed")
        log.info("Shutdown complete.")


def main() -> None:
    sys.exit(asyncio.run(app()))


if __name__ == "__main__":
    main()
