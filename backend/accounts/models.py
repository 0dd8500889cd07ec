# backend/accounts/models.py

from django.contrib.auth.models import AbstractUser
from django.db import models


class CustomUser(AbstractUser):
    ROLE_CHOICES = [
        ('sales', 'Sales'),
        ('manager', 'Manager'),
        ('finance', 'Finance'),
    ]
    # Roles allowed to approve or reject quotations sitting in validation.
    APPROVER_ROLES = ('manager', 'finance')

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='sales')

    @property
    def is_approver(self) -> bool:
        return self.role in self.APPROVER_ROLES

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
