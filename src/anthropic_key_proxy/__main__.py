"""Allow running the proxy with ``python -m anthropic_key_proxy``."""

from anthropic_key_proxy.cli import main


if __name__ == "__main__":
    main()
