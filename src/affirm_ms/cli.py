"""
Command-Line Interface for affirm-ms.

Runs the pipeline without the HTTP server, and plays sessions served by
a running instance.

Usage Examples:
    # Choose lines for an intention
    affirm-ms select --goal sleep --intention "can't stop thinking about work"

    # Generate a voiced session
    affirm-ms session --goal focus --count 4 --voice confident

    # Resolve audio for one pool line
    affirm-ms resolve --id 3f2a... --text "I am calm" --voice neutral --goal calm

    # Print a session's playlist manifest
    affirm-ms playlist 9c1e...

    # Load the built-in lines and templates into the pool
    affirm-ms seed

    # Play a session from a server (needs the 'player' extra)
    affirm-ms play 9c1e... --url http://localhost:8000 --tonal beds/tonal.mp3

Environment Variables:
    AFFIRM_MS_SETTINGS: Settings file (default config/settings.yaml)
    AFFIRM_MS_DATABASE_URL, AFFIRM_MS_STORAGE_DIR: Storage overrides
    OPENAI_API_KEY, ELEVENLABS_API_KEY: Collaborator credentials
"""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict
from typing import Any, List, Optional
from uuid import uuid4

import httpx

from affirm_ms.core.errors import AffirmError
from affirm_ms.core.logging import configure_logging, get_logger, info, set_request_id


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="affirm-ms", description="affirm-ms CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_selection_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--goal", required=True, help="sleep, focus, calm or manifest")
        p.add_argument("--intention", help="What the listener wants (default per goal)")
        p.add_argument("--count", type=int, help="Number of lines (1-10)")
        p.add_argument("--first-session", action="store_true", help="Always generate fresh lines")

    p_select = sub.add_parser("select", help="Choose lines for a goal and intention")
    add_selection_args(p_select)

    p_session = sub.add_parser("session", help="Select, store and voice a session")
    add_selection_args(p_session)
    p_session.add_argument("--voice", help="Voice id")
    p_session.add_argument("--tier", default="free", help="Access tier (free/pro)")
    p_session.add_argument("--silence-ms", type=int, help="Silence between lines")

    p_resolve = sub.add_parser("resolve", help="Resolve audio for one line")
    p_resolve.add_argument("--id", required=True, dest="affirmation_id", help="Affirmation id")
    p_resolve.add_argument("--text", required=True)
    p_resolve.add_argument("--voice", required=True)
    p_resolve.add_argument("--goal")
    p_resolve.add_argument("--pace")
    p_resolve.add_argument("--tier", default="pro", help="Access tier (free/pro)")

    p_playlist = sub.add_parser("playlist", help="Print a session's playlist manifest")
    p_playlist.add_argument("session_id")
    p_playlist.add_argument("--voice")
    p_playlist.add_argument("--tier", default="free")

    sub.add_parser("seed", help="Load built-in lines and templates into the pool")

    p_play = sub.add_parser("play", help="Play a session served by a running instance")
    p_play.add_argument("session_id")
    p_play.add_argument("--url", default="http://localhost:8000", help="API base URL")
    p_play.add_argument("--voice")
    p_play.add_argument("--tier", default="free")
    p_play.add_argument("--tonal", help="Tonal ambient bed (path or URL)")
    p_play.add_argument("--noise", help="Noise ambient bed (path or URL)")

    return parser.parse_args(argv)


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _run_service_command(args: argparse.Namespace) -> int:
    from affirm_ms.api.dependencies import get_settings
    from affirm_ms.services.affirm_service import AffirmService

    service = AffirmService(get_settings())
    try:
        if args.command == "select":
            outcome = service.select(args.goal, args.intention, args.count, args.first_session)
            _print({
                "ok": True,
                "tier": outcome.tier,
                "confidence": outcome.confidence,
                "cost": outcome.cost,
                "themes": outcome.themes,
                "lines": [{"id": line.id, "text": line.text, "source": line.source} for line in outcome.lines],
            })
        elif args.command == "session":
            result = service.create_session(
                goal=args.goal,
                intention=args.intention,
                count=args.count,
                is_first_session=args.first_session,
                voice_id=args.voice,
                tier=args.tier,
                silence_between_ms=args.silence_ms,
            )
            _print({"ok": True, **asdict(result)})
        elif args.command == "resolve":
            res = service.resolve_audio(
                args.affirmation_id, args.text, args.voice, args.goal, args.pace, tier=args.tier
            )
            _print({"ok": True, **asdict(res)})
        elif args.command == "playlist":
            manifest = service.get_playlist(args.session_id, voice_id=args.voice, tier=args.tier)
            _print(manifest.to_dict())
        elif args.command == "seed":
            _print({"ok": True, **service.seed_library()})
    except AffirmError as e:
        _print(e.to_dict())
        return 1
    finally:
        service.close()
    return 0


async def _play(args: argparse.Namespace) -> int:
    from affirm_ms.api.dependencies import get_settings
    from affirm_ms.player.backend import PygameBackend
    from affirm_ms.player.client import PlaylistClient
    from affirm_ms.player.orchestrator import PlaybackOrchestrator, PlaybackState

    log = get_logger("affirm-ms.cli")
    config = get_settings().get_service_config().playback
    client = PlaylistClient(args.url)
    try:
        manifest = await client.fetch_playlist(args.session_id, voice_id=args.voice, tier=args.tier)
    except httpx.HTTPError as e:
        _print({"ok": False, "error": "PLAYLIST_UNAVAILABLE", "message": str(e)})
        return 1
    finally:
        await client.aclose()

    if manifest.is_empty and not (args.tonal or args.noise):
        _print({"ok": True, "sessionId": manifest.session_id, "message": "playlist is empty"})
        return 0

    backend = PygameBackend()
    orchestrator = PlaybackOrchestrator(backend, manifest, config, tonal_url=args.tonal, noise_url=args.noise)
    info(log, "play", session=manifest.session_id, lines=len(manifest.lines), total_ms=manifest.total_duration_ms)
    try:
        await orchestrator.play()
        if orchestrator.state == PlaybackState.FINISHED:
            # Let the ambient fade-out complete
            await asyncio.sleep(config.fade_in_ms / 1000)
    finally:
        orchestrator.teardown()
        await backend.aclose()
    _print({"ok": True, "sessionId": manifest.session_id, "skipped": orchestrator.skipped})
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = _parse_args(argv)

    configure_logging()
    set_request_id(str(uuid4())[:12])

    if args.command == "play":
        try:
            return asyncio.run(_play(args))
        except KeyboardInterrupt:
            return 130
    return _run_service_command(args)


if __name__ == "__main__":
    raise SystemExit(main())
