from line_relay.cli.runner import run_cli

run_cli()
