"""Interactive command-line interface for the Dreamstate chat assistant."""

import asyncio
import os
import sys

from dotenv import load_dotenv  # type: ignore

from chatclient.ChatBot import ChatBot  # type: ignore
from chatclient.config import Settings  # type: ignore
from chatclient.errors import EndpointConfigError  # type: ignore
from chatclient.log import configure_logging  # type: ignore
from chatclient.MessageFormatter import format_message  # type: ignore
from chatclient.models import ChatUser  # type: ignore
from chatclient.rendering import render_terminal  # type: ignore
from chatclient.TransportClient import TransportClient  # type: ignore
from conversations.ConversationStore import ConversationStore  # type: ignore
from conversations.DatabaseProvider import DatabaseProvider  # type: ignore

HELP = (
    "Commands: /new, /history, /open <id>, /delete <id>, /help, quit\n"
    "Anything else is sent to the assistant."
)


def _print_history(store: ConversationStore, user: ChatUser) -> None:
    conversations = store.get_user_conversations(user.id)
    if not conversations:
        print("No saved conversations.")
        return
    for conversation in conversations:
        stamp = conversation.updated_at.astimezone().strftime("%b %d %H:%M")
        print(f"  {conversation.id}  {stamp}  {conversation.title}")


def _print_conversation(store: ConversationStore, conversation_id: str, user: ChatUser) -> bool:
    loaded = store.get_conversation_with_messages(conversation_id)
    if loaded.conversation is None or loaded.conversation.user_id != user.id:
        print("Conversation not found.")
        return False
    print(f"\n== {loaded.conversation.title} ==")
    for message in loaded.messages:
        speaker = "You" if message.role == "user" else "Assistant"
        segments = message.formatted_content or format_message(message.content)
        print(f"\n{speaker}: {render_terminal(segments)}")
    return True


async def _repl(bot: ChatBot, user: ChatUser) -> None:
    print("Dreamstate Assistant (type '/help' for commands, 'quit' to stop)")
    print("-" * 48)

    conversation_id = None

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "\nYou: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not user_input:
            continue
        if user_input.lower() in ("quit", "exit"):
            print("Goodbye!")
            break

        command, _, argument = user_input.partition(" ")
        argument = argument.strip()
        if command == "/help":
            print(HELP)
            continue
        if command == "/new":
            conversation_id = None
            print("Started a new conversation.")
            continue
        if command == "/history":
            _print_history(bot.store, user)
            continue
        if command == "/open" and argument:
            if _print_conversation(bot.store, argument, user):
                conversation_id = argument
            continue
        if command == "/delete" and argument:
            loaded = bot.store.get_conversation(argument)
            if loaded is None or loaded.user_id != user.id:
                print("Conversation not found.")
            elif bot.store.delete_conversation(argument):
                print("Conversation deleted.")
                if conversation_id == argument:
                    conversation_id = None
            else:
                print("Could not delete the conversation. Try again later.")
            continue

        print("\nThinking...")
        turn = await bot.process_message(user_input, user, conversation_id=conversation_id)
        if turn.conversation_id is not None:
            conversation_id = turn.conversation_id

        for reply in turn.replies:
            print(f"\nAssistant: {render_terminal(reply.formatted or [])}")
        if turn.error is not None:
            print(f"[error] {turn.error}", file=sys.stderr)


async def _run(settings: Settings, user: ChatUser) -> None:
    db_provider = DatabaseProvider(settings.db_path)
    store = ConversationStore(
        db_provider.get_connection(),
        max_field_length=settings.title_max_length,
    )
    try:
        async with TransportClient.from_settings(settings) as transport:
            await _repl(ChatBot(transport, store), user)
    finally:
        db_provider.close()


def main():
    """Run the interactive chat REPL.

    Loads environment configuration, opens the history database and the
    webhook client, then reads messages from stdin until the user quits.
    The user identity comes from ``CHAT_USER_ID`` and ``CHAT_USER_EMAIL``.
    """
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(os.environ.get("LOG_LEVEL", "WARNING"))

    user_id = os.environ.get("CHAT_USER_ID", "").strip()
    if not user_id:
        sys.exit("CHAT_USER_ID environment variable is required")
    user = ChatUser(id=user_id, email=os.environ.get("CHAT_USER_EMAIL", "").strip())

    try:
        asyncio.run(_run(settings, user))
    except EndpointConfigError as e:
        sys.exit(f"Invalid webhook configuration: {e}")


if __name__ == "__main__":
    main()
