#!/usr/bin/env python3
"""
Describe how a Kusto connection string will authenticate.
Prints the masked connection string, the selected auth strategy and the token scope.
No token is acquired.
"""
import argparse
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# Add project to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
load_dotenv(Path(__file__).parent / '.env.local')

from config.configuration import get_config
from services.auth.cloud_info import CloudInfo
from services.auth.token_provider import TokenProviderSelector
from services.common.exceptions import KustoAuthError
from services.common.logging import configure_logging
from services.infrastructure.connection_string_builder import ConnectionStringBuilder


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("connection_string", nargs="?", help="Connection string to inspect")
    parser.add_argument("--profile", help="Named connection profile from config.yaml or KUSTO_CONN_* env vars")
    args = parser.parse_args(argv)

    try:
        config = get_config()
        configure_logging(log_level=config.logging.level, json_format=config.logging.json_format)

        if args.connection_string:
            kcsb = ConnectionStringBuilder.parse(args.connection_string)
        else:
            kcsb = ConnectionStringBuilder.from_profile(args.profile)

        selector = TokenProviderSelector(CloudInfo.from_config(config))
        provider = selector.new_token_provider(kcsb)
    except KustoAuthError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.details:
            print(f"Details: {e.details}", file=sys.stderr)
        return 1

    print(f"Connection: {kcsb}")
    print(f"Strategy:   {provider.strategy.value}")
    print(f"Scope:      {provider.scope}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
