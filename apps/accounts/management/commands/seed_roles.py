from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from apps.accounts.models import UserRole


class Command(BaseCommand):
    help = "Create one auth group per user role (ADMIN, SELLER, COLLECTOR)"

    def handle(self, *args, **options):
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            state = "created" if created else "exists"
            self.stdout.write(self.style.SUCCESS(f"{group.name}: {state}"))
