import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from . import __version__
from .bot import BotDispatcher
from .config import Settings
from .db import AdminDirectory
from .pipeline import DocumentPipeline
from .renderer import PageRenderer
from .sessions import ConversationStateMachine, SessionStore
from .storage import Storage
from .tasks import inflight, spawn, workers
from .telegram_api import ChatReplier, TelegramClient
from .utils import configure_logging, json_log

APP_TITLE = "Web page images -> PDF bot"

configure_logging()

# pause after a failed getUpdates before polling again
POLL_RETRY_SECONDS = 2.0


@dataclass
class Components:
    settings: Settings
    storage: Storage
    directory: AdminDirectory
    client: TelegramClient
    conversations: ConversationStateMachine
    dispatcher: BotDispatcher


def build_components(settings: Settings, client: Optional[TelegramClient] = None) -> Components:
    storage = Storage(base=settings.storage_dir)
    directory = AdminDirectory(path=settings.admin_db_path)
    client = client or TelegramClient.from_settings(settings)
    pipeline = DocumentPipeline(
        storage=storage,
        renderer=PageRenderer(),
        navigation_timeout_ms=settings.navigation_timeout_ms,
    )
    conversations = ConversationStateMachine(
        store=SessionStore(),
        pipeline=pipeline.generate_document,
        timeout_seconds=settings.rename_timeout_seconds,
    )
    dispatcher = BotDispatcher(
        directory=directory,
        conversations=conversations,
        replier_factory=lambda chat_id: ChatReplier(client, chat_id),
    )
    return Components(
        settings=settings,
        storage=storage,
        directory=directory,
        client=client,
        conversations=conversations,
        dispatcher=dispatcher,
    )


app = FastAPI(title=APP_TITLE, version=__version__)


@app.on_event("startup")
async def on_startup():
    settings = Settings.from_env()
    comp = build_components(settings)
    comp.storage.ensure_layout()
    comp.directory.init()
    comp.directory.ensure_original(settings.original_admin_id)
    app.state.components = comp
    json_log("startup", version=__version__, mode=settings.update_mode)

    if settings.update_mode == "polling":
        workers.append(asyncio.create_task(update_poller(comp.client, comp.dispatcher)))


@app.on_event("shutdown")
async def on_shutdown():
    json_log("shutdown", inflight=len(inflight))
    for w in workers:
        w.cancel()
    await asyncio.gather(*workers, return_exceptions=True)
    workers.clear()
    # let running pipelines finish their cleanup
    if inflight:
        await asyncio.gather(*list(inflight), return_exceptions=True)
    comp: Optional[Components] = getattr(app.state, "components", None)
    if comp is not None:
        await comp.conversations.drain()


async def handle_update_safely(dispatcher: BotDispatcher, update: Dict[str, Any]):
    try:
        res = await dispatcher.handle_update(update)
        json_log("update_handled", update_id=update.get("update_id"), **res)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        json_log("update_handler_error", level=logging.ERROR, update_id=update.get("update_id"), error=str(e))


async def update_poller(client: TelegramClient, dispatcher: BotDispatcher):
    """
    Long-polls getUpdates and hands every update to its own task, so one user's
    pipeline run never delays another user's messages.
    """
    try:
        await client.delete_webhook()
    except Exception as e:
        json_log("delete_webhook_error", level=logging.WARNING, error=str(e))
    offset: Optional[int] = None
    while True:
        try:
            updates = await client.get_updates(offset=offset)
            for upd in updates:
                offset = int(upd["update_id"]) + 1
                spawn(handle_update_safely(dispatcher, upd))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            json_log("get_updates_error", level=logging.WARNING, error=str(e))
            await asyncio.sleep(POLL_RETRY_SECONDS)


@app.post("/webhook")
async def webhook(request: Request):
    comp: Optional[Components] = getattr(app.state, "components", None)
    if comp is None:
        return JSONResponse({"ok": False, "error": "not_ready"}, status_code=503)
    secret = comp.settings.webhook_secret
    if secret and request.headers.get("X-Telegram-Bot-Api-Secret-Token") != secret:
        return JSONResponse({"ok": False, "error": "unauthorized"}, status_code=401)
    try:
        payload = await request.json()
    except Exception:
        raw = await request.body()
        return JSONResponse({"ok": False, "error": "invalid_json", "raw": raw.decode("utf-8", "ignore")[:500]}, status_code=400)

    # answer Telegram immediately; the pipeline may run for minutes
    spawn(handle_update_safely(comp.dispatcher, payload))
    return JSONResponse({"ok": True})


@app.get("/")
async def root():
    return RedirectResponse(url="/health")


@app.get("/health")
async def health():
    return {"ok": True, "version": __version__}


def run():
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run("pagepdf.main:app", host=settings.host, port=settings.port, reload=False)


if __name__ == "__main__":
    run()
