from django.contrib import admin

from .models import Profile


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ('email', 'first_name', 'last_name', 'role', 'status')
    list_filter = ('role', 'status')
    search_fields = ('email', 'first_name', 'last_name')
