from django.conf import settings
from django.db import models
import uuid


# User Profile model - the LMS identity behind a Django auth user
class Profile(models.Model):
    ROLE_CHOICES = [
        ('admin', 'Admin'),
        ('instructor', 'Instructor'),
        ('trainee', 'Trainee'),
    ]
    STATUS_CHOICES = [('active', 'active'), ('inactive', 'inactive')]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='user_id')
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='profile',
        blank=True,
        null=True,
        db_column='auth_user_id'
    )
    first_name = models.CharField(max_length=100, db_column='first_name')
    last_name = models.CharField(max_length=100, db_column='last_name')
    email = models.EmailField(unique=True, db_column='email')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='trainee', db_column='role')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active', db_column='status')
    created_at = models.DateTimeField(auto_now_add=True, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'users'

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self):
        return self.role == 'admin'

    @property
    def is_instructor(self):
        return self.role == 'instructor'

    @property
    def is_trainee(self):
        return self.role == 'trainee'

    def __str__(self):
        return self.full_name or self.email
