from __future__ import annotations

import argparse
import logging

from .cli import run_cli
from .config import ConfigError, load_config
from .container import build_from_config
from .db import DbError
from .importers import ImportFileError, import_workshops_json

logger = logging.getLogger("workshopdesk")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="workshopdesk", description="Workshop booking and dispute desk")
    parser.add_argument("mode", nargs="?", choices=["cli", "web", "settle-payouts"], default="cli")
    parser.add_argument("--config", default="config.toml", help="path to the TOML config file")
    parser.add_argument("--seed", help="workshops JSON to import before starting")
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
        logging.basicConfig(
            level=getattr(logging, cfg.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        container = build_from_config(cfg)
        logger.info("%s starting (%s, %s store)", cfg.name, args.mode, "postgres" if cfg.db else "memory")

        if args.seed:
            with container.db.transaction() as conn:
                n = import_workshops_json(conn, args.seed, container.repos.workshop)
            logger.info("Seeded %d workshops from %s", n, args.seed)

        if args.mode == "settle-payouts":
            with container.db.transaction() as conn:
                moved = container.payouts.settle_payouts(conn)
            for p in moved:
                print(f"{p.id} RM {p.amount:.2f} -> {p.status.value}")
            logger.info("Advanced %d payouts", len(moved))
        elif args.mode == "web":
            from .web_app import create_app

            app = create_app(container, cfg)
            app.run(host=cfg.web.host, port=cfg.web.port)
        else:
            run_cli(container)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except ImportFileError as e:
        print(f"[IMPORT ERROR] {e}")
        return 4
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
