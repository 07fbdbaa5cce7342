"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, fields

import typer

from speckctl.core.csv_export import get_csv_header, sample_as_csv
from speckctl.core.device_match import profile_for_descriptor
from speckctl.core.display import format_mac_address, format_serial_number
from speckctl.core.errors import (
    DeviceSelectionError,
    FactoryResetError,
    SpeckError,
    UnsupportedOperationError,
)
from speckctl.core.factory import SpeckFactory
from speckctl.core.model import NetworkDescriptor, UploadUrl
from speckctl.core.speck import Speck
from speckctl.core.wifi import supported_encryptions
from speckctl.core.wifi_speck import WifiSpeck
from speckctl.transports.hidapi import HidapiTransport

app = typer.Typer(help="Speck particle sensor control over USB HID")


@dataclass(frozen=True)
class CliOptions:
    timeout_s: float = 3.0


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log HID traffic to stderr"),
    timeout: float = typer.Option(3.0, "--timeout", help="HID read timeout in seconds"),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = CliOptions(timeout_s=timeout)


def _options(ctx: typer.Context) -> CliOptions:
    return ctx.obj if isinstance(ctx.obj, CliOptions) else CliOptions()


def _build_factory(ctx: typer.Context) -> SpeckFactory:
    factory = SpeckFactory(transport=HidapiTransport(read_timeout_s=_options(ctx).timeout_s))
    for warning in factory.load_warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return factory


async def _with_speck(factory: SpeckFactory, action: Callable[[Speck], Awaitable[None]]) -> None:
    speck = await factory.create()
    if speck is None:
        raise DeviceSelectionError("No Speck found. Ensure your Speck is plugged in.")
    try:
        await action(speck)
    finally:
        await speck.disconnect()


def _run(ctx: typer.Context, action: Callable[[Speck], Awaitable[None]]) -> None:
    try:
        asyncio.run(_with_speck(_build_factory(ctx), action))
    except FactoryResetError as exc:
        typer.echo("Error: Factory reset failed", err=True)
        for message in exc.errors:
            typer.echo(f"  {message}", err=True)
        raise typer.Exit(code=1) from None
    except SpeckError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def _require_wifi(speck: Speck) -> WifiSpeck:
    if not isinstance(speck, WifiSpeck):
        raise UnsupportedOperationError("This command needs a Wi-Fi Speck")
    return speck


def _describe_network(network: NetworkDescriptor) -> str:
    encryption = network.encryption.name if network.encryption else "Unknown"
    line = f"{network.ssid} [{encryption}]"
    if network.signal_strength is not None:
        line += f" {network.signal_strength.name} ({network.rssi} dBm)"
    return line


@app.command("devices")
def list_devices(ctx: typer.Context) -> None:
    """List attached Specks and the profile each one matches."""
    try:
        factory = _build_factory(ctx)
        devices = asyncio.run(factory.enumerate())
        if not devices:
            typer.echo("No Specks found")
            return

        for device in devices:
            profile = profile_for_descriptor(device, factory.profiles)
            matched = profile.id if profile else "<no-match>"
            typer.echo(f"{device.device_id} {device.vendor_id:04x}:{device.product_id:04x} -> {matched}")
    except SpeckError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("info")
def show_info(ctx: typer.Context) -> None:
    """Show the connected Speck's identity, settings, and capabilities."""

    async def action(speck: Speck) -> None:
        config = await speck.get_config()
        caps = speck.get_capabilities()
        typer.echo(f"Serial number: {format_serial_number(config.id)}")
        typer.echo(f"Protocol version: {config.protocol_version}")
        if config.hardware_version is not None:
            typer.echo(f"Hardware version: {config.hardware_version}")
        if config.firmware_version is not None:
            typer.echo(f"Firmware version: {config.firmware_version}")
        typer.echo(f"Logging interval: {config.logging_interval_secs}s")
        if config.color_palette is not None:
            typer.echo(f"Palette: {config.color_palette.name}")
        if config.scale is not None:
            typer.echo(f"Scale: {config.scale.name}")

        if caps.has_wifi:
            status = await _require_wifi(speck).get_wifi_status()
            typer.echo(f"MAC address: {format_mac_address(status.mac_address)}")
        else:
            typer.echo("MAC address: n/a")

        enabled = [field.name for field in fields(caps) if getattr(caps, field.name)]
        typer.echo(f"Capabilities: {', '.join(enabled)}")

    _run(ctx, action)


@app.command("sample")
def show_sample(
    ctx: typer.Context,
    historical: bool = typer.Option(False, "--historical", help="Read the oldest stored sample"),
    csv: bool = typer.Option(False, "--csv", help="Print as CSV with a header row"),
) -> None:
    """Read one data sample."""

    async def action(speck: Speck) -> None:
        sample = await (speck.get_historical_sample() if historical else speck.get_current_sample())
        if sample is None:
            typer.echo("No sample available")
            return
        if csv:
            typer.echo(get_csv_header(speck.get_capabilities()))
            typer.echo(sample_as_csv(sample))
            return
        for field in fields(sample):
            value = getattr(sample, field.name)
            if value is not None:
                typer.echo(f"{field.name}: {value}")

    _run(ctx, action)


@app.command("count")
def show_count(ctx: typer.Context) -> None:
    """Print the number of samples stored on the device."""

    async def action(speck: Speck) -> None:
        typer.echo(str(await speck.get_sample_count()))

    _run(ctx, action)


@app.command("interval")
def set_interval(ctx: typer.Context, seconds: int = typer.Argument(..., help="1 to 255 seconds")) -> None:
    """Change the logging interval."""

    async def action(speck: Speck) -> None:
        if not await speck.set_logging_interval(seconds):
            raise SpeckError("The Speck did not accept the new logging interval")
        config = await speck.get_config()
        typer.echo(f"Logging interval set to {config.logging_interval_secs}s")

    _run(ctx, action)


@app.command("delete")
def delete_sample(ctx: typer.Context, timestamp: int = typer.Argument(..., help="Sample time (UTC seconds)")) -> None:
    """Delete the stored sample taken at TIMESTAMP."""

    async def action(speck: Speck) -> None:
        deleted = await speck.delete_sample(timestamp)
        typer.echo("Deleted" if deleted else "Not deleted")

    _run(ctx, action)


@app.command("export")
def export_samples(
    ctx: typer.Context,
    limit: int | None = typer.Option(None, "--limit", min=1, help="Stop after N samples"),
) -> None:
    """Drain stored samples to stdout as CSV, deleting each one once written."""

    async def action(speck: Speck) -> None:
        typer.echo(get_csv_header(speck.get_capabilities()))
        exported = 0
        while limit is None or exported < limit:
            sample = await speck.get_historical_sample()
            if sample is None:
                break
            typer.echo(sample_as_csv(sample))
            exported += 1
            if not await speck.delete_sample(sample.sample_time_secs):
                raise SpeckError(f"Failed to delete sample {sample.sample_time_secs} after export")
        typer.echo(f"Exported {exported} samples", err=True)

    _run(ctx, action)


@app.command("palette")
def set_palette(ctx: typer.Context, palette_id: int | None = typer.Argument(None)) -> None:
    """Select a color palette (0 Default, 1 Colorblind); toggles when omitted."""

    async def action(speck: Speck) -> None:
        wifi_speck = _require_wifi(speck)
        if palette_id is None:
            config = await wifi_speck.toggle_palette()
        else:
            if not await wifi_speck.set_palette(palette_id):
                raise SpeckError("The Speck did not accept the palette")
            config = await wifi_speck.get_config()
        name = config.color_palette.name if config.color_palette else "Unknown"
        typer.echo(f"Palette: {name}")

    _run(ctx, action)


@app.command("scale")
def set_scale(ctx: typer.Context, scale_id: int | None = typer.Argument(None)) -> None:
    """Select the display scale (0 Count, 1 Concentration); toggles when omitted."""

    async def action(speck: Speck) -> None:
        wifi_speck = _require_wifi(speck)
        if scale_id is None:
            config = await wifi_speck.toggle_scale()
        else:
            if not await wifi_speck.set_scale(scale_id):
                raise SpeckError("The Speck did not accept the scale")
            config = await wifi_speck.get_config()
        name = config.scale.name if config.scale else "Unknown"
        typer.echo(f"Scale: {name}")

    _run(ctx, action)


@app.command("wifi-status")
def wifi_status(ctx: typer.Context) -> None:
    """Show Wi-Fi connection and configuration state."""

    async def action(speck: Speck) -> None:
        status = await _require_wifi(speck).get_wifi_status()
        connection = status.connection_status.name if status.connection_status else "Unknown"
        typer.echo(f"MAC address: {format_mac_address(status.mac_address)}")
        typer.echo(f"Connection: {connection}")
        if status.ip_address:
            typer.echo(f"IP address: {status.ip_address}")
        typer.echo(f"Feed API key enabled: {'yes' if status.is_feed_api_key_enabled else 'no'}")
        typer.echo(f"Stored networks: {status.num_stored_networks}")
        typer.echo(f"Available networks: {status.num_available_networks}")
        for label, flag in (
            ("scanning", status.is_scanning),
            ("joining", status.is_joining),
            ("removing networks", status.is_removing_stored_networks),
        ):
            if flag:
                typer.echo(f"Busy: {label}")

    _run(ctx, action)


@app.command("wifi-scan")
def wifi_scan(ctx: typer.Context) -> None:
    """Scan for nearby Wi-Fi networks."""

    async def action(speck: Speck) -> None:
        networks = await _require_wifi(speck).scan_and_get_available_networks()
        if not networks:
            typer.echo("No networks found")
        for network in networks:
            typer.echo(_describe_network(network))

    _run(ctx, action)


@app.command("wifi-join")
def wifi_join(
    ctx: typer.Context,
    ssid: str,
    encryption: str = typer.Option("wpa2", "--encryption", help="open, wep, wpa or wpa2"),
    key: str | None = typer.Option(None, "--key", help="Network password or WEP key"),
) -> None:
    """Ask the Speck to join a Wi-Fi network."""
    by_name = {e.name.lower(): e for e in supported_encryptions()}
    chosen = by_name.get(encryption.lower())
    if chosen is None:
        typer.echo(f"Error: Unknown encryption '{encryption}'. Allowed: {', '.join(by_name)}", err=True)
        raise typer.Exit(code=1)

    async def action(speck: Speck) -> None:
        joining = await _require_wifi(speck).join_network(
            NetworkDescriptor(ssid=ssid, encryption=chosen, key=key)
        )
        typer.echo(f"Joining {ssid}" if joining else f"The Speck is not joining {ssid}")

    _run(ctx, action)


@app.command("wifi-stored")
def wifi_stored(ctx: typer.Context) -> None:
    """List the Wi-Fi networks stored on the Speck."""

    async def action(speck: Speck) -> None:
        networks = await _require_wifi(speck).get_stored_networks()
        if not networks:
            typer.echo("No stored networks")
        for index, network in enumerate(networks):
            typer.echo(f"{index}: {_describe_network(network)}")

    _run(ctx, action)


@app.command("wifi-forget")
def wifi_forget(ctx: typer.Context) -> None:
    """Remove every stored Wi-Fi network."""

    async def action(speck: Speck) -> None:
        removing = await _require_wifi(speck).remove_all_stored_networks()
        typer.echo("Removing stored networks" if removing else "The Speck is not removing stored networks")

    _run(ctx, action)


@app.command("feed-key")
def feed_key(
    ctx: typer.Context,
    key: str | None = typer.Argument(None, help="64 hex character feed API key"),
    disable: bool = typer.Option(False, "--disable", help="Store the key but disable uploads"),
    clear: bool = typer.Option(False, "--clear", help="Erase the stored key"),
) -> None:
    """Set or clear the feed API key used for uploads."""
    if clear == (key is not None):
        typer.echo("Error: Provide either KEY or --clear", err=True)
        raise typer.Exit(code=1)

    async def action(speck: Speck) -> None:
        wifi_speck = _require_wifi(speck)
        if clear:
            result = await wifi_speck.clear_feed_api_key()
        else:
            result = await wifi_speck.set_feed_api_key(key, enabled=not disable)
        if not result.success:
            raise SpeckError("The Speck did not store the feed API key")
        typer.echo(f"Feed API key {'enabled' if result.is_enabled else 'disabled'}")

    _run(ctx, action)


@app.command("upload-url")
def upload_url(
    ctx: typer.Context,
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
    path: str | None = typer.Option(None, "--path"),
) -> None:
    """Show the upload URL, or change it when any of --host/--port/--path is given."""

    async def action(speck: Speck) -> None:
        wifi_speck = _require_wifi(speck)
        url = await wifi_speck.get_upload_url()
        if host is not None or port is not None or path is not None:
            url = await wifi_speck.set_upload_url(
                UploadUrl(
                    host=host if host is not None else url.host,
                    port=port if port is not None else url.port,
                    path=path if path is not None else url.path,
                )
            )
        typer.echo(str(url))

    _run(ctx, action)


@app.command("calibrate")
def calibrate(ctx: typer.Context) -> None:
    """Put the Speck into calibration mode."""

    async def action(speck: Speck) -> None:
        if not await _require_wifi(speck).put_in_calibration_mode():
            raise SpeckError("The Speck did not enter calibration mode")
        typer.echo("Calibration mode enabled")

    _run(ctx, action)


@app.command("reset")
def factory_reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Restore factory settings and erase all stored data."""
    if not yes:
        typer.confirm("Erase all samples, networks, and settings?", abort=True)

    async def action(speck: Speck) -> None:
        await _require_wifi(speck).factory_reset(lambda percent: typer.echo(f"{percent}%"))
        typer.echo("Factory reset complete")

    _run(ctx, action)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
