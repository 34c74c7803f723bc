from django.contrib import admin


def owner_lookup(model) -> str | None:
    """Lookup from ``model`` to its owning user, or None for shared catalog models."""
    names = {f.name for f in model._meta.fields}
    if "user" in names:
        return "user"
    if "strategy" in names:
        return "strategy__user"
    return None


class OwnerScopedForeignKeysMixin:
    """Foreign key dropdowns only offer the requesting user's rows to non-superusers."""

    def formfield_for_foreignkey(self, db_field, request, **kwargs):
        related = db_field.remote_field.model
        lookup = owner_lookup(related)
        if lookup and not request.user.is_superuser:
            kwargs["queryset"] = related._default_manager.filter(**{lookup: request.user})
        return super().formfield_for_foreignkey(db_field, request, **kwargs)


class OwnedByUserAdmin(OwnerScopedForeignKeysMixin, admin.ModelAdmin):
    """
    Non-superusers only see their own rows; new rows are assigned to the
    requesting user.

    ``owner_field`` is the lookup from the admin's model to the owning user.
    """

    owner_field = "user"

    def get_queryset(self, request):
        qs = super().get_queryset(request)
        if request.user.is_superuser:
            return qs
        return qs.filter(**{self.owner_field: request.user})

    def save_model(self, request, obj, form, change):
        if self.owner_field == "user" and not obj.user_id:
            obj.user = request.user
        super().save_model(request, obj, form, change)


class OwnedInline(OwnerScopedForeignKeysMixin, admin.TabularInline):
    extra = 0
