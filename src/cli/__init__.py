"""Main CLI application module.

Entry point of the ``artifact-store`` command.

Command Groups:
- storage: Backend checks, schema creation and expired-record cleanup
"""

import typer

from .commands import storage_app

app = typer.Typer(
    help="🗄️  Artifact Store CLI - identity-provider artifact persistence",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(storage_app, name="storage")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
