import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from chat_sync.app_config import load_json_config, parse_app_config, resolve_runtime_env
from chat_sync.bootstrap import bootstrap_runtime
from chat_sync.shell import ChatShell
from chat_sync.view import ChatView


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    runtime = bootstrap_runtime(app, env)

    if not runtime.auth.is_authenticated:
        logger.error("CHAT_USER_ID and CHAT_API_TOKEN environment variables are required.")
        await runtime.close()
        sys.exit(1)

    client = runtime.client
    view = ChatView(client)
    shell = ChatShell(view, runtime.auth)

    print("chat-sync (type 'exit' to quit, '/help' for commands)")
    print(f"Server: {runtime.base_url}")
    print(f"User: {runtime.auth.display_name} (id={runtime.auth.user_id})")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    sessions = await client.load_sessions()
    if sessions.payload:
        client.select_session(sessions.payload[0].id)
        await client.load_recent_messages()
    for line in view.render_sessions():
        print(line)
    print()
    view.redraw()
    view.start()

    try:
        while runtime.auth.is_authenticated:
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                await shell.handle(trimmed)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await view.stop()
        await runtime.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
