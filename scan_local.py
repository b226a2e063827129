#!/usr/bin/env python3
"""
Local Camera Scan Script
Identifies a patient by holding their MediKeep QR code up to the local webcam
"""

import asyncio
import logging
import sys

from medikeep.config import get_settings
from medikeep.identity import QuickScanHistory, get_codec
from medikeep.scanner import (
    OpenCVCameraProvider,
    PyzbarFrameDecoder,
    ScanState,
    ScannerSession,
)


async def scan_once() -> int:
    """Run one scanner session and confirm the first patient found"""
    settings = get_settings()
    loop = asyncio.get_running_loop()
    outcome = loop.create_future()

    def on_state_change(state):
        if state in (ScanState.ERROR, ScanState.IDLE) and not outcome.done():
            outcome.set_result(None)

    def on_found(payload):
        if not outcome.done():
            outcome.set_result(payload)

    def on_notice(notice):
        print(f"⚠️  {notice.message}")

    session = ScannerSession(
        OpenCVCameraProvider(settings.camera_index, settings.frame_interval),
        PyzbarFrameDecoder(),
        QuickScanHistory(settings.history_capacity),
        codec=get_codec(),
        on_state_change=on_state_change,
        on_found=on_found,
        on_notice=on_notice,
        scan_timeout=settings.scan_timeout,
    )

    async with session:
        print(f"📷 Opening camera {settings.camera_index} (Ctrl+C to quit)")
        await session.open()
        payload = await outcome

        if payload is None:
            if session.error:
                print(f"❌ ERROR: {session.error.message}")
            else:
                print("❌ No patient identified")
            return 1

        entry = session.confirm()

    print("✅ Patient identified")
    print(f"Patient ID:  {payload.patient_id}")
    print(f"Name:        {payload.name}")
    print(f"Phone:       {payload.phone}")
    print(f"Blood Type:  {payload.blood_type or 'Unknown'}")
    print(f"Emergency:   {payload.emergency_contact}")
    if payload.allergies:
        print(f"Allergies:   {', '.join(payload.allergies)}")
    print(f"Scanned At:  {entry.scanned_at}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    print("=" * 60)
    print("MEDIKEEP QUICK SCAN")
    print("=" * 60)
    try:
        exit_code = asyncio.run(scan_once())
    except KeyboardInterrupt:
        print("\n🛑 Scan cancelled")
        exit_code = 130
    print("=" * 60)
    sys.exit(exit_code)
