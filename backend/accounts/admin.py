from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Campus users; ride data itself lives in the entity store under ``store_id``."""

    list_display = ["username", "role", "store_id", "phone_number", "is_active"]
    list_filter = ["role", "is_active", "is_staff"]
    search_fields = ["username", "email", "phone_number"]
    ordering = ("username",)
    readonly_fields = ("store_id",)
    actions = ["make_rider", "make_driver"]

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Campus Rides", {"fields": ("role", "phone_number", "store_id")}),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Campus Rides", {"fields": ("role", "phone_number")}),
    )

    @admin.display(description="Store id")
    def store_id(self, obj):
        return obj.store_id

    @admin.action(description="Switch selected users to rider")
    def make_rider(self, request, queryset):
        updated = queryset.update(role=User.RIDER)
        self.message_user(request, f"{updated} user(s) are now riders.")

    @admin.action(description="Switch selected users to driver")
    def make_driver(self, request, queryset):
        updated = queryset.update(role=User.DRIVER)
        self.message_user(request, f"{updated} user(s) are now drivers.")
