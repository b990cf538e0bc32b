import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Donation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('collector_name', models.CharField(blank=True, max_length=150, null=True)),
                ('has_collector_attribution', models.BooleanField(default=False)),
                ('donor_name', models.CharField(max_length=150)),
                ('donor_mobile', models.CharField(max_length=16)),
                ('donor_email', models.EmailField(blank=True, default='', max_length=254)),
                ('donor_email_opt_in', models.BooleanField(default=False)),
                ('donor_email_verified', models.BooleanField(default=False)),
                ('donor_address', models.TextField(blank=True, default='')),
                ('donor_address_line', models.CharField(blank=True, default='', max_length=255)),
                ('donor_address_city', models.CharField(blank=True, default='', max_length=100)),
                ('donor_address_state', models.CharField(blank=True, default='', max_length=100)),
                ('donor_address_country', models.CharField(blank=True, default='India', max_length=100)),
                ('donor_address_pincode', models.CharField(blank=True, default='', max_length=12)),
                ('donor_anonymous_display', models.BooleanField(default=False)),
                ('donor_dob', models.DateField()),
                ('donor_id_type', models.CharField(choices=[('PAN', 'PAN'), ('AADHAAR', 'Aadhaar')], default='PAN', max_length=8)),
                ('donor_id_number', models.CharField(max_length=16)),
                ('donation_head_id', models.CharField(max_length=64)),
                ('donation_head_name', models.CharField(db_index=True, max_length=150)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('payment_method', models.CharField(choices=[('ONLINE', 'Online'), ('CASH', 'Cash'), ('UPI', 'UPI'), ('CHEQUE', 'Cheque')], db_index=True, default='ONLINE', max_length=8)),
                ('gateway_order_id', models.CharField(blank=True, db_index=True, default='', max_length=64)),
                ('gateway_payment_id', models.CharField(blank=True, default='', max_length=64)),
                ('status', models.CharField(choices=[('PENDING', 'PENDING'), ('SUCCESS', 'SUCCESS'), ('FAILED', 'FAILED')], db_index=True, default='PENDING', max_length=16)),
                ('transaction_ref', models.CharField(blank=True, default='', max_length=64)),
                ('failure_reason', models.CharField(blank=True, default='', max_length=255)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('utr_number', models.CharField(blank=True, default='', max_length=64)),
                ('cheque_number', models.CharField(blank=True, default='', max_length=32)),
                ('bank_name', models.CharField(blank=True, default='', max_length=100)),
                ('cheque_date', models.DateField(blank=True, null=True)),
                ('receipt_number', models.CharField(blank=True, max_length=40, null=True, unique=True)),
                ('receipt_file', models.CharField(blank=True, default='', max_length=255)),
                ('email_sent', models.BooleanField(default=False)),
                ('otp_verified', models.BooleanField(default=False, editable=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('added_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recorded_donations', to=settings.AUTH_USER_MODEL)),
                ('collector', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='collected_donations', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='donations', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ('-created_at',),
                'indexes': [
                    models.Index(fields=['has_collector_attribution', 'status'], name='donation_attr_status_idx'),
                    models.Index(fields=['collector', 'created_at'], name='donation_collector_idx'),
                    models.Index(fields=['user', 'created_at'], name='donation_user_idx'),
                    models.Index(fields=['donor_mobile'], name='donation_donor_mobile_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OtpRecord',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('mobile', models.CharField(db_index=True, max_length=16)),
                ('otp_hash', models.CharField(max_length=128)),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
        ),
    ]
