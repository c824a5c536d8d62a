"""
Create an organization, its prefixed inventory tables and (optionally) its
first admin profile.

Usage:
  inventrack-create-org "Satguru Engravures" SATGURU --prefix satguru --domain satguru.com
  inventrack-create-org "DKEGL" DKEGL --domain dkegl.com --admin-email admin@dkegl.com --admin-password '...'
  inventrack-create-org --list
"""
import argparse
import sys

from inventrack.database import Base, SessionLocal, engine
from inventrack.models import ROLE_ADMIN
from inventrack.services import organization_service as orgs


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Create an InvenTrack organization")
    parser.add_argument("name", nargs="?", help="Organization name")
    parser.add_argument("code", nargs="?", help="Short unique code, e.g. SATGURU")
    parser.add_argument("--prefix", default="", help="Table prefix; empty uses the base tables")
    parser.add_argument("--domain", help="Email domain whose users join this organization")
    parser.add_argument("--description")
    parser.add_argument("--admin-email", help="Create an admin profile with this email")
    parser.add_argument("--admin-password")
    parser.add_argument("--list", action="store_true", help="List organizations and exit")
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if args.list:
            for org in orgs.list_organizations(db, active_only=False):
                print(f"  {org.code:<12} {org.name!r}  prefix={org.table_prefix!r}  domain={org.email_domain}")
            return 0

        if not args.name or not args.code:
            parser.error("name and code are required (or use --list)")

        try:
            org = orgs.create_organization(
                db,
                name=args.name,
                code=args.code,
                table_prefix=args.prefix,
                email_domain=args.domain,
                description=args.description,
            )
        except ValueError as e:
            print(f"ERROR: {e}")
            return 1
        print(f"Created organization {org.code} ({org.id}), prefix={org.table_prefix!r}")

        if args.admin_email:
            if not args.admin_password:
                parser.error("--admin-password is required with --admin-email")
            try:
                profile = orgs.register_profile(db, args.admin_email, args.admin_password)
                orgs.set_role(db, profile.id, org.id, ROLE_ADMIN)
            except ValueError as e:
                print(f"ERROR: organization created but admin profile failed: {e}")
                return 1
            print(f"Admin profile: {profile.email} ({profile.id})")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
