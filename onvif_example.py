#!/usr/bin/env python3
"""
ONVIF Camera Stream Example
Demonstrates the discovery-to-playback sequence: service discovery, device
information, media profiles and the RTSP stream URI.

Usage:
    python onvif_example.py 192.168.0.252:2020 --username admin --password secret

Address and credentials can also come from ONVIF_ADDRESS, ONVIF_USERNAME and
ONVIF_PASSWORD.
"""

import argparse
import asyncio
import logging
import sys

from onvif_config import Settings
from onvif_device import OnvifDevice, OnvifResponse
from onvif_request import RequestType


def print_response(response: OnvifResponse):
    """Listener printing each completed request"""
    status = "OK" if response.ok else "FAILED"
    print(f"[{status}] {response.request.type}: {response.summary}")


def print_device(device: OnvifDevice):
    info = device.device_information
    print("\n=== Device Information ===")
    print(f"Manufacturer: {info.manufacturer}")
    print(f"Model: {info.model}")
    print(f"Firmware Version: {info.firmware_version}")
    print(f"Serial Number: {info.serial_number}")
    print(f"Hardware ID: {info.hardware_id}")

    print("\n=== Service Paths ===")
    for kind, path in device.paths.as_dict().items():
        print(f"{kind}: {path}")

    print("\n=== Media Profiles ===")
    for i, profile in enumerate(device.media_profiles):
        print(f"Profile {i+1}:")
        print(f"  Name: {profile.name}")
        print(f"  Token: {profile.token}")
        if profile.encoding:
            print(f"  Video Encoding: {profile.encoding}")
        if profile.width and profile.height:
            print(f"  Resolution: {profile.width}x{profile.height}")


async def run(device: OnvifDevice, steps) -> int:
    for kind in steps:
        response = await device.perform(kind)
        if response is None:
            print(f"Skipped {kind}: no media profile available")
            return 1
        if not response.ok:
            return 1
    return 0


def main(argv=None):
    """Example usage"""
    parser = argparse.ArgumentParser(description="Retrieve the RTSP stream URI of an ONVIF camera")
    parser.add_argument('address', nargs='?', help='Camera address, e.g. 192.168.0.252:2020')
    parser.add_argument('--username', help='Camera username')
    parser.add_argument('--password', help='Camera password')
    parser.add_argument('--skip-services', action='store_true',
                        help='Use the default service path instead of calling GetServices')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log SOAP traffic')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    settings = Settings.from_env(args.address, args.username, args.password)
    if not settings.address:
        parser.error("a camera address is required")

    device = OnvifDevice.from_settings(settings)
    device.subscribe(print_response)

    steps = [RequestType.GET_DEVICE_INFORMATION, RequestType.GET_PROFILES,
             RequestType.GET_STREAM_URI]
    if not args.skip_services:
        steps.insert(0, RequestType.GET_SERVICES)

    try:
        status = asyncio.run(run(device, steps))
    finally:
        device.close()

    print_device(device)
    if status == 0:
        print(f"\nYou can view the stream using VLC or similar: {device.rtsp_uri}")
    return status


if __name__ == "__main__":
    sys.exit(main())
