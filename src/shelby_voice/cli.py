from __future__ import annotations

import json
import mimetypes
from pathlib import Path
from typing import Any

import click

from shelby_voice import __version__
from shelby_voice.config import get_safe_config_report, get_settings
from shelby_voice.errors import ShelbyVoiceError
from shelby_voice.pipeline.process import process_and_store
from shelby_voice.security.access import LedgerFileOracle
from shelby_voice.storage.backend import build_gateway
from shelby_voice.synthesis.dispatcher import build_dispatcher
from shelby_voice.synthesis.providers import ELEVENLABS, build_providers
from shelby_voice.utils.log import set_log_level


def _echo(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


class _ErrorGroup(click.Group):
    """Render domain errors as a one-line message instead of a traceback."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except ShelbyVoiceError as ex:
            raise click.ClickException(f"{ex.kind}: {ex.public_message}") from ex


@click.group(cls=_ErrorGroup, name="shelby-voice")
@click.version_option(__version__, prog_name="shelby-voice")
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation.")
def cli(log_level: str | None) -> None:
    """Voice model bundles: process, store, resolve and speak."""
    if log_level:
        set_log_level(log_level)


@cli.command("process")
@click.argument("audio", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--owner", required=True, help="Owning account (URI account segment).")
@click.option("--voice-id", required=True, help="Object id under the namespace.")
@click.option("--name", required=True, help="Display name.")
@click.option("--description", default=None)
@click.option("--namespace", default=None, help="Defaults to DEFAULT_NAMESPACE.")
@click.option("--mime-type", default=None, help="Declared input type (guessed from the filename).")
def process_cmd(
    audio: Path,
    owner: str,
    voice_id: str,
    name: str,
    description: str | None,
    namespace: str | None,
    mime_type: str | None,
) -> None:
    mime = mime_type or mimetypes.guess_type(audio.name)[0] or "audio/wav"
    res = process_and_store(
        build_gateway(),
        audio.read_bytes(),
        mime_type=mime,
        name=name,
        owner=owner,
        voice_id=voice_id,
        description=description,
        namespace=namespace,
    )
    _echo(res.to_dict())


@cli.command("get")
@click.argument("uri")
@click.argument("filename")
@click.option("--out", "out_path", type=click.Path(dir_okay=False, path_type=Path), default=None)
def get_cmd(uri: str, filename: str, out_path: Path | None) -> None:
    data = build_gateway().get(uri, filename)
    if out_path is None:
        click.echo(data, nl=False)
        return
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(data)
    _echo({"ok": True, "uri": uri, "filename": filename, "bytes": len(data), "out": str(out_path)})


@cli.command("delete")
@click.argument("uri")
@click.option("--account", required=True, help="Requesting account; must own the URI.")
def delete_cmd(uri: str, account: str) -> None:
    _echo(build_gateway().delete(uri, account).to_dict())


@cli.command("list")
@click.argument("account")
@click.option("--namespace", default=None)
@click.option("--uri", "object_uri", default=None, help="List the parts of one object instead.")
def list_cmd(account: str, namespace: str | None, object_uri: str | None) -> None:
    gw = build_gateway()
    if object_uri:
        _echo({"uri": object_uri, "parts": gw.list_parts(object_uri)})
        return
    ns = str(namespace or get_settings().default_namespace)
    _echo({"account": account, "namespace": ns, "objects": gw.list_objects(account, ns)})


@cli.command("purge")
@click.option("--yes", is_flag=True, default=False, help="Do not prompt.")
def purge_cmd(yes: bool) -> None:
    """Remove every stored object."""
    gw = build_gateway()
    if not yes:
        click.confirm(f"Remove ALL objects from the {gw.store.name} store?", abort=True)
    _echo({"ok": True, "removed": gw.purge()})


@cli.command("grant")
@click.argument("uri")
@click.argument("buyer")
@click.option("--name", default="")
@click.option("--price", type=float, default=None)
@click.option("--tx-hash", default="")
def grant_cmd(uri: str, buyer: str, name: str, price: float | None, tx_hash: str) -> None:
    """Record a purchase in the entitlement ledger."""
    oracle = LedgerFileOracle(get_settings().resolved_ledger_path())
    _echo(oracle.record_purchase(uri, buyer, name=name, price=price, tx_hash=tx_hash))


@cli.command("speak")
@click.argument("model_ref")
@click.argument("text")
@click.option("--requester", default=None, help="Requesting account (storage models).")
@click.option("--out", "out_path", required=True, type=click.Path(dir_okay=False, path_type=Path))
def speak_cmd(model_ref: str, text: str, requester: str | None, out_path: Path) -> None:
    d = build_dispatcher(build_gateway())
    res = d.synthesize(model_ref, text, requester)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(res.audio)
    _echo(
        {
            "ok": True,
            "out": str(out_path),
            "bytes": len(res.audio),
            "provider": res.provider,
            "voice_id": res.voice_id,
            "strategy": res.strategy,
            "fallback_reason": res.fallback_reason,
        }
    )


@cli.command("voices")
def voices_cmd() -> None:
    provider = build_providers()[ELEVENLABS]
    _echo({"voices": provider.list_voices()})


@cli.command("config")
def config_cmd() -> None:
    """Print the effective configuration (secrets as SET/UNSET)."""
    _echo(get_safe_config_report())


@cli.command("serve")
@click.option("--host", default=None)
@click.option("--port", type=int, default=None)
@click.option("--reload", is_flag=True, default=False)
def serve_cmd(host: str | None, port: int | None, reload: bool) -> None:
    import uvicorn

    s = get_settings()
    uvicorn.run(
        "shelby_voice.server:app",
        host=str(host or s.host),
        port=int(port or s.port),
        reload=bool(reload),
    )


if __name__ == "__main__":  # pragma: no cover
    cli()
