from __future__ import annotations

from pathlib import Path
import argparse
import logging

from dotenv import load_dotenv

from config import Config, validate_config
from delivery_note_service import generate_delivery_note, resolve_base_url
from errors import DeliveryNoteError
from store import open_store


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Render the Lieferschein PDF for one order.")
    parser.add_argument("order_id", help="Order id (positive integer)")
    parser.add_argument("-o", "--output", type=Path, help="Target file (default: lieferschein_<id>.pdf)")
    parser.add_argument("--base-url", default="", help="Base URL used to resolve the logo reference")
    args = parser.parse_args(argv)

    load_dotenv()
    config = Config.from_env()
    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))

    missing = validate_config(config)
    if missing:
        print("Missing or invalid configuration values:")
        for name in missing:
            print(f" - {name}")
        return 1

    base_url = args.base_url.rstrip("/") or resolve_base_url(config)
    try:
        note = generate_delivery_note(
            args.order_id,
            store=open_store(config),
            base_url=base_url,
            config=config,
        )
    except DeliveryNoteError as exc:
        print(f"{exc.public_message} ({exc})")
        return 2

    output_path = args.output or Path(note.filename)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("wb") as handle:
        for chunk in note.chunks:
            handle.write(chunk)
    print(f"Saved: {output_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
