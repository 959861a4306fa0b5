from prcli.cli import run

run()
