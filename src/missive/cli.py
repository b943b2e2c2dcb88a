from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from .config import load_settings
from .errors import MissiveError
from .mail.document import read_document
from .pipeline.orchestrator import MissiveOrchestrator

DEFAULT_CONFIG = "conf/missive.yml"


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Sign, encrypt and deliver a document as an S/MIME missive")
    parser.add_argument("document", help="Path to the document to send")
    parser.add_argument(
        "--config",
        dest="config",
        default=os.getenv("MISSIVE_CONFIG", DEFAULT_CONFIG),
        help="Configuration file (YAML or .properties; default $MISSIVE_CONFIG or %(default)s)",
    )
    parser.add_argument("--subject", dest="subject", help="Mail subject (default: document file name)")
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    try:
        settings = load_settings(args.config)
        body = read_document(args.document)
    except MissiveError as e:
        print(f"missive not sent: {e}")
        return 1

    orchestrator = MissiveOrchestrator.from_settings(settings)
    missive = orchestrator.missive_for(body, args.subject or Path(args.document).name)
    result = orchestrator.run(missive)
    if not result.delivered:
        print(f"missive not sent: {result.error}")
        return 1
    if not result.archived:
        print(f"warning: missive {result.message_id} delivered to {settings.recipient_address} but not archived: {result.error}")
        return 0
    print(f"missive {result.message_id} delivered to {settings.recipient_address} and archived in {settings.imap_folder}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
