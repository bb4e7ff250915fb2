"""CLI entry point for Sport Meetup."""

import logging
import os

from sport_meetup.app import create_app


def main():
    debug = os.environ.get("FLASK_DEBUG", "false").lower() in ("1", "true", "yes")
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO)
    app = create_app()
    app.run(debug=debug, port=int(os.environ.get("PORT", "5000")))


if __name__ == "__main__":
    main()
