from django.apps import AppConfig


class AccountDeletionConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'account_deletion'
    verbose_name = 'Account Deletion'
