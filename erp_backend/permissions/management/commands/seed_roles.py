# permissions/management/commands/seed_roles.py

from __future__ import annotations

from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from permissions.roles import ROLE_CAPABILITIES, split_capability


def resolve_permissions(capabilities) -> list[Permission]:
    """
    "<app_label>.<codename>" -> Permission rows. Missing ones are an error
    (usually: migrations not applied).
    """
    resolved = []
    missing = []

    for capability in sorted(capabilities):
        app_label, codename = split_capability(capability)
        perm = Permission.objects.filter(
            content_type__app_label=app_label, codename=codename
        ).first()
        if perm is None:
            missing.append(capability)
        else:
            resolved.append(perm)

    if missing:
        raise CommandError(f"Unknown permissions: {', '.join(missing)}. Run migrate first.")

    return resolved


def seed_roles(*, roles=None) -> dict[str, bool]:
    """
    Idempotent: one Group per role, permissions reset to the default map.
    Returns {role: created}.
    """
    results = {}
    for role in roles or sorted(ROLE_CAPABILITIES):
        group, created = Group.objects.get_or_create(name=role)
        group.permissions.set(resolve_permissions(ROLE_CAPABILITIES[role]))
        results[role] = created
    return results


class Command(BaseCommand):
    help = "Seed finance staff roles as auth groups with their AR/AP permissions."

    def add_arguments(self, parser):
        parser.add_argument(
            "--role",
            action="append",
            dest="roles",
            default=None,
            help="Only this role (repeatable). Default: all roles.",
        )

    @transaction.atomic
    def handle(self, *args, **options):
        roles = options.get("roles")

        unknown = sorted(set(roles or []) - set(ROLE_CAPABILITIES))
        if unknown:
            raise CommandError(
                f"Invalid --role {unknown}. Must be one of: {sorted(ROLE_CAPABILITIES)}"
            )

        results = seed_roles(roles=roles)

        for role, created in results.items():
            label = "created" if created else "updated"
            self.stdout.write(f"{label}: {role} ({len(ROLE_CAPABILITIES[role])} permissions)")

        self.stdout.write(self.style.SUCCESS(f"Seeded {len(results)} roles."))
