# permissions/tests/test_roles.py

from io import StringIO
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from rest_framework.test import APIRequestFactory

from permissions.roles import (
    ALL_CAPABILITIES,
    CAP_AP_ALLOCATE,
    CAP_AR_ALLOCATE,
    CAP_AR_VERIFY,
    ROLE_ADMIN,
    ROLE_AR_CLERK,
    ROLE_CAPABILITIES,
    ROLE_CREDIT_CONTROLLER,
    HasCapability,
    IsFinanceManagerOrAdmin,
    IsFinanceStaff,
    effective_capabilities_for,
    get_primary_role,
)

User = get_user_model()


class SeedRolesTests(TestCase):
    def test_every_capability_exists_and_seeding_is_idempotent(self):
        out = StringIO()
        call_command("seed_roles", stdout=out)
        call_command("seed_roles", stdout=out)

        self.assertEqual(Group.objects.count(), len(ROLE_CAPABILITIES))
        clerk = Group.objects.get(name=ROLE_AR_CLERK)
        self.assertEqual(clerk.permissions.count(), len(ROLE_CAPABILITIES[ROLE_AR_CLERK]))
        self.assertIn("updated: ar_clerk", out.getvalue())

    def test_single_role(self):
        call_command("seed_roles", "--role", ROLE_AR_CLERK, stdout=StringIO())
        self.assertEqual(list(Group.objects.values_list("name", flat=True)), [ROLE_AR_CLERK])

    def test_unknown_role(self):
        with self.assertRaises(CommandError):
            call_command("seed_roles", "--role", "cashier", stdout=StringIO())


class CapabilityTests(TestCase):
    def setUp(self):
        call_command("seed_roles", stdout=StringIO())
        self.clerk = User.objects.create_user(username="clerk", password="pass1234")
        self.clerk.groups.add(Group.objects.get(name=ROLE_AR_CLERK))

    def test_clerk_capabilities(self):
        caps = effective_capabilities_for(self.clerk)

        self.assertIn(CAP_AR_ALLOCATE, caps)
        self.assertNotIn(CAP_AR_VERIFY, caps)
        self.assertNotIn(CAP_AP_ALLOCATE, caps)
        self.assertEqual(get_primary_role(self.clerk), ROLE_AR_CLERK)

    def test_superuser_has_everything(self):
        boss = User.objects.create_superuser(username="boss", password="pass1234")
        self.assertEqual(effective_capabilities_for(boss), ALL_CAPABILITIES)

    def test_drf_permission_classes(self):
        request = APIRequestFactory().get("/")
        request.user = self.clerk

        view = SimpleNamespace(required_capability=CAP_AR_ALLOCATE)
        self.assertTrue(HasCapability().has_permission(request, view))

        view = SimpleNamespace(required_capability=CAP_AR_VERIFY)
        self.assertFalse(HasCapability().has_permission(request, view))

        # unset capability denies
        self.assertFalse(HasCapability().has_permission(request, SimpleNamespace()))
        self.assertFalse(IsFinanceManagerOrAdmin().has_permission(request, None))

    def test_credit_controller_can_verify(self):
        controller = User.objects.create_user(username="cc", password="pass1234")
        controller.groups.add(Group.objects.get(name=ROLE_CREDIT_CONTROLLER))

        self.assertTrue(controller.has_perm(CAP_AR_VERIFY))


class RolePermissionTests(TestCase):
    """
    GUARANTEES:
    - Group membership decides role access
    - Anonymous users denied everywhere
    """

    def setUp(self):
        self.factory = APIRequestFactory()
        call_command("seed_roles", stdout=StringIO())

        self.admin = User.objects.create_user(username="admin", password="pass")
        self.admin.groups.add(Group.objects.get(name=ROLE_ADMIN))

        self.clerk = User.objects.create_user(username="clerk", password="pass")
        self.clerk.groups.add(Group.objects.get(name=ROLE_AR_CLERK))

        self.outsider = User.objects.create_user(username="outsider", password="pass")

    def _request_for(self, user=None):
        request = self.factory.get("/")
        request.user = user
        return request

    def test_admin(self):
        request = self._request_for(self.admin)

        self.assertTrue(IsFinanceManagerOrAdmin().has_permission(request, None))
        self.assertTrue(IsFinanceStaff().has_permission(request, None))
        self.assertEqual(get_primary_role(self.admin), ROLE_ADMIN)

    def test_clerk(self):
        request = self._request_for(self.clerk)

        self.assertTrue(IsFinanceStaff().has_permission(request, None))
        self.assertFalse(IsFinanceManagerOrAdmin().has_permission(request, None))

    def test_user_without_role(self):
        request = self._request_for(self.outsider)

        self.assertFalse(IsFinanceStaff().has_permission(request, None))
        self.assertIsNone(get_primary_role(self.outsider))
        self.assertEqual(effective_capabilities_for(self.outsider), set())

    def test_anonymous_denied(self):
        request = self._request_for(None)

        self.assertFalse(IsFinanceStaff().has_permission(request, None))
        self.assertFalse(HasCapability().has_permission(request, SimpleNamespace(required_capability=CAP_AR_ALLOCATE)))
