"""Console entry point: ``forum-bridge importer run INPUT_PATH OUTPUT_PATH``."""

from dotenv import load_dotenv
from flask.cli import FlaskGroup


def _create_app():
    from forum_bridge.factory import create_app

    return create_app()


main = FlaskGroup(
    name="forum-bridge",
    create_app=_create_app,
    load_dotenv=False,
    help="forum-bridge management commands.",
)


def run():
    # Load environment variables from .env file first
    load_dotenv()
    main()
