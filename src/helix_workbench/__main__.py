import asyncio

from dotenv import load_dotenv
from loguru import logger

from helix_workbench.app_config import load_json_config, parse_app_config, resolve_runtime_env
from helix_workbench.bootstrap import bootstrap_runtime


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    runtime = bootstrap_runtime(app, env)
    workbench = runtime.workbench

    print("helix-workbench (type 'exit' to quit, '/help' for commands)")
    print(f"AI service: {app.ai_service_url}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    await workbench.start(runtime.initial_session_id)
    if runtime.initial_session_id:
        print(f"Session: {runtime.initial_session_id} (loading results...)")

    try:
        while True:
            try:
                # Read input off the loop so result loads keep running while the prompt waits.
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                print()
                await workbench.run(trimmed)
                print("\n")
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        await workbench.shutdown()
        await runtime.api_client.aclose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
