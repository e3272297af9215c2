import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings
from .errors import DeliveryError


class TelegramAPIError(Exception):
    def __init__(self, method: str, description: str):
        super().__init__(f"{method}: {description}")
        self.method = method
        self.description = description


class TelegramClient:
    def __init__(self, token: str, base_url: str = "https://api.telegram.org", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.base_url = base_url.rstrip("/")
        # injectable for tests (httpx.MockTransport)
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramClient":
        return cls(token=settings.bot_token, base_url=settings.telegram_api_base_url)

    def _url(self, method: str) -> str:
        return f"{self.base_url}/bot{self.token}/{method}"

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport)

    @staticmethod
    def _result(method: str, resp: httpx.Response) -> Any:
        resp.raise_for_status()
        data = resp.json()
        if not data.get("ok"):
            raise TelegramAPIError(method, str(data.get("description") or "unknown error"))
        return data.get("result")

    async def send_message(self, chat_id: str, text: str) -> Dict[str, Any]:
        """
        Send a plain text message to a chat.
        """
        async with self._client(30) as client:
            resp = await client.post(self._url("sendMessage"), json={"chat_id": chat_id, "text": text})
            return self._result("sendMessage", resp)

    async def send_document(self, chat_id: str, file_path: Path, filename: str, caption: Optional[str] = None) -> Dict[str, Any]:
        """
        Upload a local file as a document attachment. The attachment name shown to the
        user is `filename`, independent of the name on disk.
        """
        ctype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        data = {"chat_id": chat_id}
        if caption:
            data["caption"] = caption
        async with self._client(300) as client:
            with Path(file_path).open("rb") as f:
                files = {"document": (filename, f, ctype)}
                resp = await client.post(self._url("sendDocument"), data=data, files=files)
            return self._result("sendDocument", resp)

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 50) -> List[Dict[str, Any]]:
        """
        Long-poll for new updates. The HTTP timeout is kept above the server-side
        poll timeout so an empty poll returns normally.
        """
        params: Dict[str, Any] = {"timeout": timeout, "allowed_updates": '["message"]'}
        if offset is not None:
            params["offset"] = offset
        async with self._client(timeout + 15) as client:
            resp = await client.get(self._url("getUpdates"), params=params)
            return self._result("getUpdates", resp) or []

    async def delete_webhook(self) -> bool:
        # getUpdates is refused while a webhook is registered
        async with self._client(30) as client:
            resp = await client.post(self._url("deleteWebhook"))
            return bool(self._result("deleteWebhook", resp))


class ChatReplier:
    """
    Reply channel bound to one chat; handed to the conversation layer and the pipeline.
    """

    def __init__(self, client: TelegramClient, chat_id: str):
        self.client = client
        self.chat_id = chat_id

    async def reply_text(self, text: str):
        await self.client.send_message(chat_id=self.chat_id, text=text)

    async def reply_document(self, path: Path, filename: str):
        try:
            await self.client.send_document(chat_id=self.chat_id, file_path=path, filename=filename)
        except (httpx.HTTPError, TelegramAPIError, OSError) as e:
            raise DeliveryError(f"could not send {filename}: {e}") from e
