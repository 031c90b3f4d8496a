# Resolve the counties around a scanner location, or the towns inside chosen counties
from argparse import ArgumentParser
import json
import logging
import sys

from dotenv import load_dotenv

from coverage_geo.service import GeoResolutionService
from coverage_geo.utils.errors import RequestPreconditionError

if __name__ == '__main__':
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    parser = ArgumentParser()
    sub = parser.add_subparsers(dest='command', required=True)

    counties = sub.add_parser('counties', help='counties within a radius of a point')
    counties.add_argument('--lat', type=float, required=True)
    counties.add_argument('--lon', type=float, required=True)
    counties.add_argument('--state', '-s', type=str, required=True)
    counties.add_argument('--radius', '-r', type=float, default=None)
    counties.add_argument('--provider', '-p', type=str, default=None)

    towns = sub.add_parser('towns', help='towns inside the given counties')
    towns.add_argument('--state', '-s', type=str, required=True)
    towns.add_argument('--county', '-c', action='append', required=True)
    towns.add_argument('--api-key', type=str, default=None)
    towns.add_argument('--provider', '-p', type=str, default=None)

    check_key = sub.add_parser('check-key', help='verify a LocationIQ or Google API key')
    check_key.add_argument('--provider', '-p', type=str, required=True, choices=['locationiq', 'google'])
    check_key.add_argument('--key', '-k', type=str, required=True)

    args = parser.parse_args()

    with GeoResolutionService() as service:
        try:
            if args.command == 'counties':
                response = service.resolve_counties({
                    'latitude': args.lat,
                    'longitude': args.lon,
                    'state_code': args.state,
                    'radius_miles': args.radius,
                    'preferred_provider': args.provider,
                })
            elif args.command == 'towns':
                response = service.enumerate_towns({
                    'counties': args.county,
                    'state_code': args.state,
                    'api_key': args.api_key,
                    'provider': args.provider,
                })
            else:
                response = service.check_provider_key({
                    'provider': args.provider,
                    'key': args.key,
                })
        except RequestPreconditionError as e:
            print(e.summary(), file=sys.stderr)
            sys.exit(2)

    print(json.dumps(response.model_dump(by_alias=True), indent=2))
