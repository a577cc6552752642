from django.contrib import admin
from .models import Appointment


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['appointment_date', 'patient', 'doctor', 'status', 'created_at']
    list_filter = ['status']
    search_fields = ['patient__user__email', 'doctor__user__email']
    readonly_fields = ['id', 'created_at', 'updated_at']
    autocomplete_fields = ['patient', 'doctor']
    date_hierarchy = 'appointment_date'
