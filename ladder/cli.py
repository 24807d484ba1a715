import argparse
import getpass
import sys
from types import SimpleNamespace

from .logging_config import setup_logging
from .models import LADDER_TYPES
from .services.exceptions import ServiceError
from .services import users as user_service
from .services import ladders as ladder_service
from . import storage


def _print_standings(ladder_id: str) -> None:
    table = ladder_service.standings(ladder_id)
    print(f"{ladder_id} (version {table['version']})")
    for m in table["members"]:
        rank = m["rank"] if m["rank"] is not None else "-"
        print(
            f"{rank:>4}  {m['name'] or m['user_id']:<24} score={m['score']:<5} "
            f"streak={m['winning_streak']:<3} trend={m['trend']}"
        )


def main(argv=None):
    parser = argparse.ArgumentParser(description='Ladder league admin CLI')
    sub = parser.add_subparsers(dest='cmd')

    sub.add_parser('init_db')

    reg = sub.add_parser('register_user')
    reg.add_argument('user_id')
    reg.add_argument('name')
    reg.add_argument('email')
    reg.add_argument('--password')
    reg.add_argument('--phone')
    reg.add_argument('--admin', action='store_true')

    promote = sub.add_parser('promote')
    promote.add_argument('user_id')
    promote.add_argument('--revoke', action='store_true')

    cladder = sub.add_parser('create_ladder')
    cladder.add_argument('admin_id')
    cladder.add_argument('name')
    cladder.add_argument('--ladder-id')
    cladder.add_argument('--type', choices=LADDER_TYPES, default='competitive')
    cladder.add_argument('--fee', type=float, default=0.0)

    stand = sub.add_parser('standings')
    stand.add_argument('ladder_id')

    args = parser.parse_args(argv)
    setup_logging()

    try:
        if args.cmd == 'init_db':
            storage._connect().close()
            print("database ready")
        elif args.cmd == 'register_user':
            password = args.password or getpass.getpass("Password: ")
            data = SimpleNamespace(
                user_id=args.user_id,
                name=args.name,
                email=args.email,
                phone=args.phone,
                password=password,
            )
            uid = user_service.create_user(data, is_admin=args.admin)
            print(f"registered {uid}")
        elif args.cmd == 'promote':
            user_service.set_admin(args.user_id, not args.revoke)
            print(f"{args.user_id} admin={not args.revoke}")
        elif args.cmd == 'create_ladder':
            lid = ladder_service.create_ladder(
                args.admin_id, args.name, type=args.type, fee=args.fee, ladder_id=args.ladder_id
            )
            print(f"created {lid}")
        elif args.cmd == 'standings':
            _print_standings(args.ladder_id)
        else:
            parser.print_help()
            return 1
    except ServiceError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
