"""Main entry point for Nivuus Agent."""

import asyncio
from pathlib import Path

import typer
import yaml

from nivuus_agent import __version__
from nivuus_agent.agent import TurnOrchestrator
from nivuus_agent.cli import ConsoleIO
from nivuus_agent.config import Config, is_valid_api_key, resolve_api_key, set_config
from nivuus_agent.exceptions import ConfigurationError
from nivuus_agent.instructions import InstructionLoader
from nivuus_agent.llm import create_provider
from nivuus_agent.logging import configure_logging, log
from nivuus_agent.persistence import PersistenceManager, ShutdownGuard
from nivuus_agent.runtime_context import AgentContext
from nivuus_agent.tools import build_default_registry

app = typer.Typer(help="Nivuus Agent - an interruptible console agent with durable memory")


def load_config(config: str = "", model: str = "", provider: str = "") -> Config:
    """Load configuration and apply command-line overrides."""
    if config:
        path = Path(config).expanduser()
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        cfg = Config.from_yaml(path)
    else:
        cfg = Config.load()

    if model:
        cfg.model.model = model
    if provider:
        cfg.model.provider = provider
    set_config(cfg)
    return cfg


async def run_session(orchestrator: TurnOrchestrator) -> int:
    """Run the loop and release network clients afterwards."""
    try:
        return await orchestrator.run()
    finally:
        await orchestrator.provider.close()
        await orchestrator.registry.close()


def main(
    api_key: str = "",
    config: str = "",
    model: str = "",
    provider: str = "",
    verbose: bool = False,
) -> int:
    """Start an interactive session.

    Returns:
        Process exit code
    """
    io = ConsoleIO()
    try:
        cfg = load_config(config, model, provider)
    except (ConfigurationError, ValueError, yaml.YAMLError) as e:
        io.show_error(f"Invalid configuration: {e}")
        return 1
    configure_logging(verbose=verbose)

    key, source = resolve_api_key(api_key, cfg)
    if not is_valid_api_key(key, cfg):
        log.error("Missing or invalid API key", source=source)
        io.show_error(
            "No valid API key. Pass --api-key, set OPENAI_API_KEY, "
            "or set model.api_key in the configuration file."
        )
        return 1

    instructions = InstructionLoader()
    registry = build_default_registry(cfg)
    system_prompt = instructions.system_prompt(registry.list_tools())

    persistence = PersistenceManager.from_config(cfg)
    history, memory = persistence.load(system_prompt)
    context = AgentContext(config=cfg, memory=memory, history=history, io=io)

    guard = ShutdownGuard(persistence, context)
    guard.install()

    llm = create_provider(
        provider=cfg.model.provider,
        model=cfg.model.model,
        api_key=key,
        base_url=cfg.resolved_base_url(),
        temperature=cfg.model.temperature,
        timeout=cfg.model.request_timeout,
    )
    orchestrator = TurnOrchestrator(context, llm, registry, instructions, guard=guard)

    io.show_banner(cfg.model.model, source)
    try:
        return asyncio.run(run_session(orchestrator))
    except Exception as e:
        log.error("Fatal error", error=str(e), exc_info=True)
        guard.flush("unrecovered error")
        io.show_error(f"Fatal error: {e}")
        return 1
    finally:
        guard.uninstall()


@app.command()
def run(
    api_key: str = typer.Option("", "--api-key", help="Completion API key (overrides OPENAI_API_KEY)"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    provider: str = typer.Option("", "-p", "--provider", help="Override provider (openai, ollama)"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start the interactive agent."""
    raise typer.Exit(main(api_key, config, model, provider, verbose))


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"Nivuus Agent v{__version__}")


if __name__ == "__main__":
    app()
