from io import StringIO

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from django.test import TestCase

from apps.accounts.models import UserRole
from apps.common.permissions import resolve_role

User = get_user_model()


class RoleTests(TestCase):
    def test_new_users_default_to_seller(self):
        user = User.objects.create_user(username="nuevo", password="nuevo123")
        self.assertEqual(user.role, UserRole.SELLER)

    def test_seed_roles_is_idempotent(self):
        call_command("seed_roles", stdout=StringIO())
        out = StringIO()
        call_command("seed_roles", stdout=out)
        self.assertEqual(set(Group.objects.values_list("name", flat=True)), set(UserRole.values))
        self.assertIn("COLLECTOR: exists", out.getvalue())

    def test_group_membership_overrides_role_field(self):
        user = User.objects.create_user(username="cobrador", password="cobrador123", role=UserRole.SELLER)
        group = Group.objects.create(name=UserRole.COLLECTOR)
        user.groups.add(group)
        self.assertEqual(resolve_role(user), UserRole.COLLECTOR)
