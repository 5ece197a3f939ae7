"""CLI entry point: ``vibeflow generate``, ``count-tokens`` and ``models``."""

from __future__ import annotations

import argparse
import asyncio
import sys
from contextlib import aclosing
from pathlib import Path

from vibeflow import __version__
from vibeflow.config import Settings, create_http_client
from vibeflow.constants import (
    SECTION_TITLES,
    ArtifactSection,
    ProviderId,
)
from vibeflow.credentials import SettingsCredentials
from vibeflow.logging_config import setup_logging
from vibeflow.providers.base import ProviderAdapter
from vibeflow.providers.catalog import ModelCatalog
from vibeflow.providers.factory import build_adapter, resolve_model_id
from vibeflow.providers.registry import get_provider
from vibeflow.providers.schemas import GenerationRequest, SamplingSettings
from vibeflow.services.generation_service import GenerationCoordinator
from vibeflow.streaming.events import DoneEvent, ErrorEvent, drain_events
from vibeflow.tokens.estimator import TokenCounter
from vibeflow.tokens.pricing import (
    format_cost,
    format_token_count,
    models_for_provider,
)
from vibeflow.tokens.usage import TokenUsage
from vibeflow.versions.store import ArtifactVersionStore

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"vibeflow {__version__}")
        return EXIT_OK

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    settings = Settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level)

    try:
        if args.command == "generate":
            return asyncio.run(_run_generate(args, settings))
        if args.command == "count-tokens":
            return asyncio.run(_run_count_tokens(args, settings))
        return asyncio.run(_run_models(args, settings))
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return EXIT_CANCELLED


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="vibeflow",
        description=(
            "Generate research, requirements, design and build-plan "
            "artifacts with any supported LLM provider."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    sub = parser.add_subparsers(dest="command")

    generate = sub.add_parser("generate", help="Generate one artifact")
    _add_text_source(generate, "prompt")
    generate.add_argument(
        "--provider",
        "-p",
        choices=[p.value for p in ProviderId],
        default=None,
        help="Provider (default: from settings)",
    )
    generate.add_argument(
        "--model",
        "-m",
        default=None,
        help="Model id (default: provider's first default model)",
    )
    generate.add_argument(
        "--section",
        "-s",
        choices=[s.value for s in ArtifactSection],
        default=ArtifactSection.RESEARCH.value,
        help="Artifact section (default: research)",
    )
    generate.add_argument(
        "--system",
        default="",
        help="System instruction",
    )
    generate.add_argument(
        "--temperature",
        type=float,
        default=SamplingSettings().temperature,
    )
    generate.add_argument(
        "--max-output-tokens",
        type=int,
        default=None,
    )
    generate.add_argument(
        "--grounding",
        action="store_true",
        help="Enable web/search grounding where supported",
    )
    generate.add_argument(
        "--background",
        action="store_true",
        help="Run as a deep research background task",
    )

    count = sub.add_parser(
        "count-tokens", help="Count tokens for a text"
    )
    _add_text_source(count, "text")
    count.add_argument(
        "--provider",
        "-p",
        choices=[p.value for p in ProviderId],
        default=ProviderId.GEMINI.value,
    )
    count.add_argument("--model", "-m", default=None)

    models = sub.add_parser("models", help="List available models")
    models.add_argument(
        "--provider",
        "-p",
        choices=[p.value for p in ProviderId],
        default=None,
        help="Only this provider (default: all)",
    )
    models.add_argument(
        "--live",
        action="store_true",
        help="Fetch the live OpenRouter model list",
    )

    return parser


def _add_text_source(
    parser: argparse.ArgumentParser, name: str
) -> None:
    parser.add_argument(
        name,
        nargs="?",
        default=None,
        help=f"{name.capitalize()} text (or use --file / stdin)",
    )
    parser.add_argument(
        "--file",
        "-f",
        type=Path,
        default=None,
        help=f"Read the {name} from a file",
    )


def _read_text(text: str | None, path: Path | None) -> str:
    if path is not None:
        return path.read_text(encoding="utf-8")
    if text is not None:
        return text
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return ""


async def _run_generate(
    args: argparse.Namespace, settings: Settings
) -> int:
    """Stream one generation to stdout; status goes to stderr."""
    prompt = _read_text(args.prompt, args.file).strip()
    if not prompt:
        print("Error: prompt is empty", file=sys.stderr)
        return EXIT_FAILED

    provider = ProviderId(args.provider or settings.default_provider)
    section = ArtifactSection(args.section)
    usage = TokenUsage()

    async with create_http_client(settings) as client:

        def select_adapter(
            selected: ProviderId, background: bool
        ) -> ProviderAdapter:
            return build_adapter(
                selected, client, settings, background=background
            )

        coordinator = GenerationCoordinator(
            ArtifactVersionStore(),
            usage,
            select_adapter,
            credentials=SettingsCredentials(settings),
        )
        request = GenerationRequest(
            prompt=prompt,
            model_id=resolve_model_id(
                provider, args.model, args.background
            ),
            system_instruction=args.system,
            sampling=SamplingSettings(
                temperature=args.temperature,
                max_output_tokens=args.max_output_tokens,
            ),
            grounding_enabled=args.grounding,
        )

        print(f"{SECTION_TITLES[section]} via {provider}", file=sys.stderr)
        async with aclosing(
            coordinator.run(
                section, provider, request, background=args.background
            )
        ) as events:
            terminal = await drain_events(
                events,
                on_chunk=_write_chunk,
                on_status=lambda msg: print(f"  {msg}", file=sys.stderr),
            )

    if isinstance(terminal, ErrorEvent):
        print(f"\nError: {terminal.message}", file=sys.stderr)
        return EXIT_FAILED
    if not isinstance(terminal, DoneEvent):
        print("\nCancelled.", file=sys.stderr)
        return EXIT_CANCELLED

    if args.background:
        # Background tasks deliver the whole text at once
        _write_chunk(terminal.final_text)
    sys.stdout.write("\n")
    for source in terminal.sources:
        print(f"  [{source.title or source.uri}] {source.uri}", file=sys.stderr)
    print(
        f"Tokens: {format_token_count(usage.input_tokens)} in, "
        f"{format_token_count(usage.output_tokens)} out "
        f"({format_cost(usage.estimated_cost)})",
        file=sys.stderr,
    )
    return EXIT_OK


def _write_chunk(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


async def _run_count_tokens(
    args: argparse.Namespace, settings: Settings
) -> int:
    text = _read_text(args.text, args.file)
    provider = ProviderId(args.provider)
    model_id = args.model or get_provider(provider).default_model
    async with create_http_client(settings) as client:
        tokens = await TokenCounter(client).exact_count(
            text,
            model_id,
            settings.api_key_for(provider),
            provider,
        )
    print(tokens)
    return EXIT_OK


async def _run_models(
    args: argparse.Namespace, settings: Settings
) -> int:
    if args.live:
        async with create_http_client(settings) as client:
            catalog = ModelCatalog(
                client,
                credential=settings.openrouter_api_key or None,
                ttl_seconds=settings.model_cache_ttl_seconds,
            )
            groups = await catalog.groups()
        if catalog.last_error:
            print(
                f"Warning: using fallback list ({catalog.last_error})",
                file=sys.stderr,
            )
        for group in groups:
            print(f"{group.display_name}:")
            for model in group.models:
                print(f"  {model.id}  [{model.tier}]")
        return EXIT_OK

    providers = (
        [ProviderId(args.provider)] if args.provider else list(ProviderId)
    )
    for provider in providers:
        print(f"{get_provider(provider).display_name}:")
        for model in models_for_provider(provider):
            print(
                f"  {model.id}  [{model.tier}] "
                f"${model.input_cost_per_million:g}/"
                f"${model.output_cost_per_million:g} per 1M"
            )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
