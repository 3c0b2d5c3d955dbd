from subtunnel.cli.main import run

run()
