from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from accounts.models import CustomUser


class Command(BaseCommand):
    help = 'Create local users for each role (sales, manager, finance)'

    def add_arguments(self, parser):
        parser.add_argument('--password', default=None,
                            help='Password for every user (default: <role>_password)')

    def handle(self, *args, **options):
        for role, _label in CustomUser.ROLE_CHOICES:
            username = f'{role}_user'
            if CustomUser.objects.filter(username=username).exists():
                self.stdout.write(self.style.WARNING(f"User {username} already exists"))
                continue

            password = options['password'] or f'{role}_password'
            CustomUser.objects.create(username=username, password=make_password(password), role=role)
            self.stdout.write(self.style.SUCCESS(f"Created {role} user: {username}"))
