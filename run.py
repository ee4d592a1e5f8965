"""Run the MinerU host."""

from mineru_host.main import run

if __name__ == "__main__":
    run()
