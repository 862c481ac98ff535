"""Command line entry point for the Yandex HomeKit bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from pyhap.accessory_driver import AccessoryDriver

from .api import YandexApiClient
from .auth import AuthorizationPendingError, YandexAuthManager
from .config import BridgeSettings, ConfigurationError, load_settings
from .coordinator import (
    PublishInfo,
    ReconciliationController,
    bridge_publish_info,
)
from .storage import DeviceStore, JsonStore

_LOGGER = logging.getLogger(__name__)


def _auth_manager(settings: BridgeSettings) -> YandexAuthManager:
    return YandexAuthManager(
        JsonStore(settings.auth_path, private=True),
        client_id=settings.client_id,
        client_secret=settings.client_secret,
    )


async def async_authorize(
    auth: YandexAuthManager,
    *,
    prompt: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
) -> None:
    """Walk the user through the device-code flow on the console."""

    code = await auth.async_request_device_code()
    message = (
        f"Go to {code.verification_url} and enter the code: {code.user_code}\n"
        "After done please press ENTER: "
    )
    loop = asyncio.get_running_loop()
    while True:
        await loop.run_in_executor(None, prompt, message)
        try:
            await auth.async_complete_device_code(code.device_code)
        except AuthorizationPendingError:
            message = (
                "The application is not authorized yet. "
                "Please press ENTER after done: "
            )
            continue
        output("Authorization successful!")
        return


async def async_authorize_command(settings: BridgeSettings) -> int:
    auth = _auth_manager(settings)
    try:
        await auth.async_initialize()
        await async_authorize(auth)
    finally:
        await auth.async_close()
    return 0


def _accessory_driver(settings: BridgeSettings, info: PublishInfo) -> AccessoryDriver:
    return AccessoryDriver(
        port=info.port,
        pincode=info.pincode.encode("utf-8"),
        mac=info.username,
        persist_file=str(settings.accessory_state_path),
        loop=asyncio.get_running_loop(),
    )


async def async_run_command(settings: BridgeSettings) -> int:
    """Authorize if needed, publish the bridge and run the fetch loop."""

    auth = _auth_manager(settings)
    api = YandexApiClient(auth)
    try:
        await auth.async_initialize()
        if not auth.is_authorized:
            await async_authorize(auth)

        info = bridge_publish_info(pincode=settings.pincode, port=settings.port)
        driver = _accessory_driver(settings, info)
        store = DeviceStore(JsonStore(settings.devices_path))
        controller = ReconciliationController.from_settings(settings, api, store, driver)
        await controller.async_load()
        controller.setup_bridge(info)
        print(
            f"Bridge {settings.bridge_name} ({info.username}) "
            f"on port {info.port}, pin code: {info.pincode}"
        )
        await controller.async_publish()
        try:
            await controller.start()
        finally:
            await controller.async_stop()
    finally:
        await api.async_close()
        await auth.async_close()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch to the selected command."""

    parser = argparse.ArgumentParser(
        prog="yandex-homekit", description="Bridge Yandex smart home devices"
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory holding settings.yaml, yandex.json and devices.json",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("authorize", help="Authorize the bridge with Yandex")
    subparsers.add_parser("run", help="Run the bridge")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(args.config_dir)
    except ConfigurationError as err:
        parser.error(str(err))

    command = async_authorize_command if args.command == "authorize" else async_run_command
    try:
        return asyncio.run(command(settings))
    except ConfigurationError as err:
        _LOGGER.error("%s", err)
        return 1
    except KeyboardInterrupt:  # pragma: no cover - CLI
        return 130


if __name__ == "__main__":  # pragma: no cover - CLI
    raise SystemExit(main())
