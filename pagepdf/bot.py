import logging
from typing import Any, Callable, Dict, Optional

from .db import AdminDirectory, AdminRecord
from .errors import AuthorizationError, BotError, ValidationError
from .sessions import ConversationStateMachine
from .utils import is_numeric_id, json_log, split_command


ACCESS_DENIED_MESSAGE = "Sorry, you do not have access to this bot. Please contact the admin to get access."


class AdminCommands:
    """
    /addadmin <id> and /removeadmin <id>, permitted only to the original admin.
    """

    def __init__(self, directory: AdminDirectory):
        self.directory = directory

    def _require_original(self, caller_id: str, denial: str):
        original = self.directory.find_original()
        if original is None or original.user_id != caller_id:
            raise AuthorizationError(denial)

    @staticmethod
    def _validated_id(arg: Optional[str], prompt: str) -> str:
        if not is_numeric_id(arg):
            raise ValidationError(prompt)
        return arg.strip()

    def add_admin(self, caller_id: str, arg: Optional[str]) -> str:
        self._require_original(caller_id, "Only the original admin can add new admins.")
        new_id = self._validated_id(arg, "Please provide a valid user ID of the new admin.")
        if not self.directory.insert(AdminRecord(user_id=new_id)):
            return f"User {new_id} is already an admin."
        json_log("admin_added", by=caller_id, user_id=new_id)
        return f"User {new_id} has been added as an admin."

    def remove_admin(self, caller_id: str, arg: Optional[str]) -> str:
        self._require_original(caller_id, "Only the original admin can remove admins.")
        target = self._validated_id(arg, "Please provide a valid user ID of the admin to remove.")
        record = self.directory.find_by_user_id(target)
        if record is not None and record.is_original:
            return "The original admin cannot be removed."
        if not self.directory.delete_by_user_id(target):
            return f"User {target} is not an admin."
        json_log("admin_removed", by=caller_id, user_id=target)
        return f"User {target} has been removed as an admin."

    def handle(self, command: str, caller_id: str, arg: Optional[str]) -> str:
        handler = {"addadmin": self.add_admin, "removeadmin": self.remove_admin}[command]
        try:
            return handler(caller_id, arg)
        except BotError as e:
            json_log("admin_command_rejected", command=command, by=caller_id, reason=e.__class__.__name__)
            return str(e)


class BotDispatcher:
    COMMANDS = ("addadmin", "removeadmin")

    def __init__(
        self,
        directory: AdminDirectory,
        conversations: ConversationStateMachine,
        replier_factory: Callable[[str], Any],
        commands: Optional[AdminCommands] = None,
    ):
        self.directory = directory
        self.conversations = conversations
        self.replier_factory = replier_factory
        self.commands = commands or AdminCommands(directory)

    def is_authorized(self, user_id: str) -> bool:
        return self.directory.find_by_user_id(user_id) is not None

    async def handle_update(self, update: Dict[str, Any]) -> Dict[str, Any]:
        message = update.get("message") or {}
        sender = message.get("from") or {}
        chat = message.get("chat") or {}
        if not sender.get("id") or not chat.get("id"):
            return {"ok": True, "ignored": "no_sender"}
        user_id = str(sender["id"])
        reply = self.replier_factory(str(chat["id"]))

        if not self.is_authorized(user_id):
            json_log("access_denied", user_id=user_id)
            await self._say(reply, ACCESS_DENIED_MESSAGE)
            return {"ok": True, "denied": True}

        text = message.get("text")
        if not isinstance(text, str) or not text:
            return {"ok": True, "ignored": "no_text"}

        command, arg = split_command(text)
        if command in self.COMMANDS:
            await self._say(reply, self.commands.handle(command, user_id, arg))
            return {"ok": True, "command": command}

        await self.conversations.handle_text(user_id, text, reply)
        return {"ok": True}

    @staticmethod
    async def _say(reply: Any, text: str):
        try:
            await reply.reply_text(text)
        except Exception as e:
            json_log("reply_failed", level=logging.ERROR, error=str(e))
