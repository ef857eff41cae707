from django.contrib import admin

from .models import Book, Judgment


@admin.register(Book)
class BookAdmin(admin.ModelAdmin):
    list_display = ("title", "author", "price", "discounted_price", "uploaded_by", "uploader_type", "status", "created_at")
    list_filter = ("status", "uploader_type")
    search_fields = ("title", "author", "isbn", "uploaded_by__email")


@admin.register(Judgment)
class JudgmentAdmin(admin.ModelAdmin):
    list_display = ("title", "court", "citation", "price", "uploaded_by", "uploader_type", "status", "created_at")
    list_filter = ("status", "uploader_type")
    search_fields = ("title", "court", "citation", "uploaded_by__email")
