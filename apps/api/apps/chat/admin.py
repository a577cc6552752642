from django.contrib import admin
from .models import Conversation, Message


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ['id', 'appointment', 'patient', 'doctor', 'created_at', 'last_activity_at']
    search_fields = ['patient__user__email', 'doctor__user__email']
    readonly_fields = ['id', 'appointment', 'patient', 'doctor', 'created_at', 'last_activity_at']
    date_hierarchy = 'last_activity_at'

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    # Bodies are PHI; the changelist shows metadata only
    list_display = ['id', 'conversation', 'sender', 'created_at']
    search_fields = ['sender__email']
    readonly_fields = ['id', 'conversation', 'sender', 'body', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
