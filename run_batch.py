#!/usr/bin/env python3
"""
Batch runner entry point.

Serves the HTTP command API for one TaskOrchestrator working on a
project directory.

Usage:
    python run_batch.py --cwd ~/code/myproject
    python run_batch.py --cwd . --prompt "@/src/services add module docstrings"

Then drive the run over HTTP:
    curl -X POST localhost:8770/continue
    curl localhost:8770/state

Prerequisites:
    - OPENROUTER_API_KEY set, or in .env (template synthesis)
    - The agent CLI named in config.yaml (runtime.command) on PATH
"""

import asyncio
import sys
from pathlib import Path

# Ensure project root is in path
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))


async def main():
    """Build the orchestrator from config and serve the API."""
    import argparse
    from dotenv import load_dotenv

    from batch.api import run_with_api
    from batch.events import ProgressBroadcaster
    from batch.files import DEFAULT_IGNORE_FILE, IgnoreFilter, LocalFileLister
    from batch.orchestrator import TaskOrchestrator
    from batch.runtime import CliAgentRuntime
    from llm import CompletionClient
    from shared.config import load_config

    parser = argparse.ArgumentParser(
        description="batchloop - agent-driven batch file processing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python run_batch.py --cwd ~/code/app
    python run_batch.py --cwd . --prompt "@/src/components add prop types"
    python run_batch.py --config my-config.yaml --api-port 9100
        """
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Config file (default: BATCHLOOP_CONFIG or config.yaml)"
    )
    parser.add_argument(
        "--cwd",
        default=".",
        help="Project root to process (default: current directory)"
    )
    parser.add_argument(
        "--prompt",
        default=None,
        help="Start a run immediately with this prompt"
    )
    parser.add_argument(
        "--api-host",
        default=None,
        help="HTTP API host (default: api.host or 127.0.0.1)"
    )
    parser.add_argument(
        "--api-port",
        type=int,
        default=None,
        help="HTTP API port (default: api.port or 8770)"
    )

    args = parser.parse_args()

    # OPENROUTER_API_KEY may live in .env
    load_dotenv()

    config = load_config(args.config)
    llm_config = config.get("llm", {})
    batch_config = config.get("batch", {})
    runtime_config = config.get("runtime", {})
    api_config = config.get("api", {})

    cwd = Path(args.cwd).expanduser().resolve()
    if not cwd.is_dir():
        print(f"Error: {cwd} is not a directory")
        sys.exit(1)

    host = args.api_host or api_config.get("host", "127.0.0.1")
    port = args.api_port or api_config.get("port", 8770)

    print("Starting batchloop...")
    print(f"  Project: {cwd}")
    print(f"  Model: {llm_config.get('model', 'default')}")
    print(f"  Agent: {' '.join(runtime_config.get('command', ['claude', '-p', '{instruction}']))}")
    print(f"  API: http://{host}:{port}")
    print()

    client = CompletionClient.from_config(llm_config)
    runtime = CliAgentRuntime(
        cwd,
        command=runtime_config.get("command"),
        # An agent never outlives the wait for it
        timeout=runtime_config.get("timeout_seconds",
                                   batch_config.get("task_timeout_seconds", 300)),
    )
    request_settings = {
        key: llm_config[key]
        for key in ("model", "temperature", "max_tokens", "timeout_seconds")
        if key in llm_config
    }
    options = {"language": llm_config["language"]} if llm_config.get("language") else {}

    orchestrator = TaskOrchestrator(
        runtime=runtime,
        transport=client,
        cwd=cwd,
        observer=ProgressBroadcaster(),
        file_lister=LocalFileLister(),
        ignore_filter=IgnoreFilter(cwd, batch_config.get("ignore_file", DEFAULT_IGNORE_FILE)),
        config=batch_config,
        api_config=request_settings,
        options=options,
    )

    background = set()
    if args.prompt:
        background.add(asyncio.create_task(orchestrator.start(args.prompt)))

    try:
        await run_with_api(orchestrator, host=host, port=port)
    finally:
        for task in background:
            task.cancel()
        await runtime.close()
        await client.close()


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested...")


if __name__ == "__main__":
    cli()
