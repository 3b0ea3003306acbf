"""Application bootstrap helpers and the ``agentpad`` command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, get_args, get_origin, get_type_hints

import httpx

from .ai.client import AIClient, ClientSettings
from .ai.orchestration.tool_dispatcher import ToolDispatcher
from .ai.tools import build_default_registry
from .ai.tools.base import ToolContext
from .chat.session_manager import ChatSessionManager
from .editor.content_cache import CacheConfig, ContentCache
from .editor.document_service import DocumentService, RetryPolicy
from .events import ConversationFailed, EventBus, StreamingChunk
from .services.settings import ProviderProfile, SecretVault, Settings, SettingsStore, redact_secret
from .services.workspace import LocalWorkspace
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

DEFAULT_PROVIDER_ID = "default"


@dataclass(slots=True)
class Services:
    """Every long-lived collaborator, wired together by :func:`build_services`."""

    settings: Settings
    event_bus: EventBus
    workspace: LocalWorkspace
    document: DocumentService
    dispatcher: ToolDispatcher
    client: AIClient
    provider: ProviderProfile
    sessions: ChatSessionManager

    def tool_context(self) -> ToolContext:
        return ToolContext(document=self.document, workspace=self.workspace)

    async def aclose(self) -> None:
        """Stop autosave and release network resources."""

        await self.document.aclose()
        await self.client.aclose()


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_services(
    settings: Settings,
    *,
    store: SettingsStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> Services:
    """Construct the document, tool, client and conversation services for ``settings``.

    Autosave is started when ``settings.autosave_interval`` is positive, which
    requires a running event loop.
    """

    vault: SecretVault = (store or SettingsStore()).vault
    event_bus = EventBus()
    workspace = LocalWorkspace(Path(settings.workspace_root or os.getcwd()).expanduser())
    document = DocumentService(
        workspace,
        event_bus=event_bus,
        cache=ContentCache(CacheConfig(max_entries=settings.cache_size)),
        retry=RetryPolicy(
            attempts=settings.io_retry_attempts,
            min_seconds=settings.io_retry_min_seconds,
            max_seconds=settings.io_retry_max_seconds,
        ),
    )
    if settings.autosave_interval > 0:
        document.enable_autosave(settings.autosave_interval)

    dispatcher = ToolDispatcher(build_default_registry())
    client = AIClient(
        vault,
        settings=ClientSettings(
            request_timeout=settings.request_timeout,
            default_headers=settings.default_headers or None,
            debug_logging=settings.debug_logging,
        ),
        http_client=http_client,
    )
    provider = ProviderProfile(
        id=DEFAULT_PROVIDER_ID,
        name=DEFAULT_PROVIDER_ID,
        base_url=settings.base_url,
        api_key=vault.encrypt(settings.api_key),
        models=[settings.model],
    )
    sessions = ChatSessionManager(
        client,
        dispatcher,
        event_bus=event_bus,
        max_tool_iterations=settings.max_tool_iterations,
        stream_responses=settings.stream_responses,
    )
    _LOGGER.debug("Services built (workspace=%s, model=%s)", workspace.root, settings.model)
    return Services(
        settings=settings,
        event_bus=event_bus,
        workspace=workspace,
        document=document,
        dispatcher=dispatcher,
        client=client,
        provider=provider,
        sessions=sessions,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the ``agentpad`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = _env_flag("AGENTPAD_DEBUG", default=False)
    configure_logging(debug, force=True)

    settings_path = args.settings_path or os.environ.get("AGENTPAD_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    store = SettingsStore(resolved_path)
    try:
        overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.workspace:
        overrides["workspace_root"] = args.workspace

    settings = load_settings(resolved_path, store=store, overrides=overrides or None)
    if args.dump_settings:
        _dump_settings(settings, store)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if not args.prompt:
        parser.error("a prompt is required unless --dump-settings is given")

    prompt = " ".join(args.prompt)
    try:
        exit_code = asyncio.run(_run_prompt(settings, store, prompt, open_path=args.open, save=args.save))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        exit_code = 130
    if exit_code:
        raise SystemExit(exit_code)


async def _run_prompt(
    settings: Settings,
    store: SettingsStore,
    prompt: str,
    *,
    open_path: str | None,
    save: bool,
) -> int:
    services = build_services(settings, store=store)
    streamed = False

    def _echo(event: Any) -> None:
        nonlocal streamed
        streamed = True
        sys.stdout.write(event.content)
        sys.stdout.flush()

    def _report(event: Any) -> None:
        print(f"\nerror: {event.message}", file=sys.stderr)

    unsubscribe_chunks = services.event_bus.subscribe(StreamingChunk, _echo)
    unsubscribe_errors = services.event_bus.subscribe(ConversationFailed, _report)
    try:
        if open_path:
            await services.document.open(open_path)
        session = services.sessions.create_session(settings.model, tools_enabled=settings.tools_enabled)
        reply = await services.sessions.send_message(
            session.id,
            prompt,
            services.provider,
            context=services.tool_context(),
        )
        if reply is None:
            return 1
        if streamed:
            sys.stdout.write("\n")
        else:
            print(reply.content or "")
        if save and services.document.is_dirty:
            await services.document.save()
            _LOGGER.info("Saved %s", services.document.current_path)
        return 0
    finally:
        unsubscribe_chunks()
        unsubscribe_errors()
        await services.aclose()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentpad",
        description="Run one agent turn against a document, or inspect the configuration.",
    )
    parser.add_argument("prompt", nargs="*", help="Message to send to the assistant.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.agentpad/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument("--workspace", metavar="DIR", help="Workspace root directory.")
    parser.add_argument("--open", metavar="PATH", help="Workspace-relative document to make active.")
    parser.add_argument("--save", action="store_true", help="Save the document if the agent edited it.")
    return parser


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    normalized = raw_value.strip()
    if normalized.lower() in {"none", "null"} and type(None) in get_args(annotation):
        return None

    target = _resolve_annotation(annotation)
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(settings: Settings, store: SettingsStore) -> None:
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    payload["settings_path"] = str(store.path)
    print(json.dumps(payload, indent=2, sort_keys=True))


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
