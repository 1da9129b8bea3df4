def main() -> None:
    """CLI entrypoint for the caselens console script."""
    from caselens.cli.app import app

    app()
