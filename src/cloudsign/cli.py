"""
Command-line interface for cloudsign
Signs a single HTTP request and prints the result, for debugging signature mismatches
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple

from .version import __version__
from .credentials import Credentials, EnvironmentCredentialsSource, snapshot_credentials
from .exceptions import CloudSignError, ConfigurationError
from .signing.mutator import apply_signature
from .signing.signing_config import SigningConfig, SigningScheme, create_signer
from .signing.types import HttpRequest, StringPayload

DEFAULT_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog='cloudsign',
        description='Sign an HTTP request for a cloud-provider API and print the signed request'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'cloudsign {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command', help='Signing schemes')

    setup_aws_parser(subparsers)
    setup_chef_parser(subparsers)

    return parser


def add_request_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('url', help='Absolute request URL')
    parser.add_argument('--method', '-X', help='HTTP method (default: GET, or POST with --data)')
    parser.add_argument('--data', '-d', help='Request body')
    parser.add_argument(
        '--header', '-H',
        action='append',
        default=[],
        metavar='NAME:VALUE',
        help='Request header (repeatable)'
    )
    parser.add_argument('--timestamp', help='Fixed signing timestamp instead of the current time')
    parser.add_argument(
        '--show-canonical',
        action='store_true',
        help='Also print the canonical request and string to sign'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')


def setup_aws_parser(subparsers):
    """Setup AWS Signature Version 4 subcommand."""
    aws_parser = subparsers.add_parser('aws-v4', help='AWS Signature Version 4')
    add_request_arguments(aws_parser)
    aws_parser.add_argument('--service', help='Service token (default: parsed from the URL host)')
    aws_parser.add_argument('--region', help='Region token (default: parsed from the URL host)')
    aws_parser.add_argument('--api-version', help='Version parameter added to form bodies that lack one')
    aws_parser.add_argument('--query', action='store_true', help='Sign in the query string (presigned URL)')
    aws_parser.add_argument('--expires', type=int, help='X-Amz-Expires in seconds (with --query)')
    aws_parser.add_argument(
        '--unsigned-payload',
        action='store_true',
        help='Use UNSIGNED-PAYLOAD instead of the body hash (with --query)'
    )


def setup_chef_parser(subparsers):
    """Setup Chef server subcommand."""
    chef_parser = subparsers.add_parser('chef', help='Chef server RSA header signing')
    add_request_arguments(chef_parser)
    chef_parser.add_argument('--user', help='Chef user or client name (default: $CHEF_USER_ID)')
    chef_parser.add_argument('--key-file', help='PEM private key file (default: $CHEF_CLIENT_KEY)')


def parse_headers(values: List[str]) -> List[Tuple[str, str]]:
    """Parse ``NAME:VALUE`` arguments."""
    headers = []
    for value in values:
        name, sep, header_value = value.partition(':')
        if not sep or not name.strip():
            raise ConfigurationError(f"Invalid header {value!r}, expected NAME:VALUE")
        headers.append((name.strip(), header_value.strip()))
    return headers


def build_request(args, default_content_type: Optional[str] = None) -> HttpRequest:
    headers = parse_headers(args.header)
    method = args.method or ('POST' if args.data is not None else 'GET')

    payload = None
    if args.data is not None:
        if default_content_type and not any(name.lower() == 'content-type' for name, _ in headers):
            headers.append(('Content-Type', default_content_type))
        payload = StringPayload(args.data)

    return HttpRequest(method=method, url=args.url, headers=headers, payload=payload)


def build_aws_config(args) -> SigningConfig:
    scheme = SigningScheme.AWS_V4_QUERY if args.query else SigningScheme.AWS_V4
    if (args.expires is not None or args.unsigned_payload) and not args.query:
        raise ConfigurationError("--expires and --unsigned-payload require --query")
    return SigningConfig(
        scheme=scheme,
        endpoint=args.url,
        service=args.service,
        region=args.region,
        api_version=args.api_version,
        expires_seconds=args.expires,
        sign_payload=not args.unsigned_payload,
    )


def chef_credentials(args) -> Credentials:
    if args.key_file:
        user = args.user or os.environ.get('CHEF_USER_ID')
        if not user:
            raise ConfigurationError("A Chef user is required (--user or $CHEF_USER_ID)")
        try:
            with open(os.path.expanduser(args.key_file), 'r', encoding='utf-8') as f:
                return Credentials(user, f.read())
        except OSError as e:
            raise ConfigurationError(f"Cannot read key file {args.key_file}: {e}")

    credentials = EnvironmentCredentialsSource.for_chef().get_credentials()
    if args.user:
        return Credentials(args.user, credentials.secret)
    return credentials


def sign_and_describe(signer: Any, credentials_source: Any, request: HttpRequest, show_canonical: bool) -> Dict[str, Any]:
    """
    Sign a request once and describe the result.

    Returns:
        dict: Method, URL and headers of the signed request, plus the
        canonical strings when ``show_canonical`` is set
    """
    credentials = snapshot_credentials(credentials_source)
    context = signer.create_context(request)
    result = signer.compute_signature(request, context, credentials)
    signed = apply_signature(request, result)

    output: Dict[str, Any] = {
        'method': signed.method,
        'url': signed.url,
        'headers': [[name, value] for name, value in signed.headers],
    }
    if show_canonical:
        output['canonical_request'] = result.canonical_request
        output['string_to_sign'] = result.string_to_sign
    return output


def handle_aws_command(args) -> Dict[str, Any]:
    """Handle AWS Signature Version 4 command."""
    config = build_aws_config(args)
    config.debug.log_canonical_strings = args.verbose
    credentials = EnvironmentCredentialsSource()
    timestamp_provider = (lambda: args.timestamp) if args.timestamp else None
    signer = create_signer(config, credentials, timestamp_provider)
    request = build_request(args, DEFAULT_FORM_CONTENT_TYPE)
    return sign_and_describe(signer, signer.credentials, request, args.show_canonical)


def handle_chef_command(args) -> Dict[str, Any]:
    """Handle Chef server command."""
    config = SigningConfig(scheme=SigningScheme.CHEF)
    config.debug.log_canonical_strings = args.verbose
    timestamp_provider = (lambda: args.timestamp) if args.timestamp else None
    signer = create_signer(config, chef_credentials(args), timestamp_provider)
    request = build_request(args)
    return sign_and_describe(signer, signer.credentials, request, args.show_canonical)


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the CLI

    Args:
        argv: Command line arguments (None to use sys.argv)

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(name)s %(levelname)s %(message)s'
    )

    try:
        if args.command == 'aws-v4':
            output = handle_aws_command(args)
        else:
            output = handle_chef_command(args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except CloudSignError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(output, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
