# Generated migration: stock movement ledger and reservations

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


STOCKABLE_TYPES = [('product', 'Product'), ('variant', 'Product variant')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stockable_type', models.CharField(choices=STOCKABLE_TYPES, max_length=16)),
                ('stockable_id', models.PositiveBigIntegerField()),
                ('movement_type', models.CharField(
                    choices=[
                        ('manual_entry', 'Manual entry'),
                        ('manual_exit', 'Manual exit'),
                        ('adjustment', 'Adjustment'),
                        ('sale', 'Sale'),
                        ('refund', 'Refund'),
                        ('reservation', 'Reservation'),
                        ('reservation_release', 'Reservation release'),
                    ],
                    max_length=32,
                )),
                ('quantity', models.IntegerField()),
                ('quantity_before', models.IntegerField()),
                ('quantity_after', models.IntegerField()),
                ('ref_type', models.CharField(blank=True, default='', max_length=32)),
                ('ref_id', models.PositiveBigIntegerField(blank=True, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='stock_movements', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['stockable_type', 'stockable_id', 'created_at'], name='inventory_s_stockab_6c1f0e_idx'),
                    models.Index(fields=['movement_type', 'created_at'], name='inventory_s_movemen_3b9a2d_idx'),
                    models.Index(fields=['ref_type', 'ref_id'], name='inventory_s_ref_typ_8e4c71_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockReservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stockable_type', models.CharField(choices=STOCKABLE_TYPES, max_length=16)),
                ('stockable_id', models.PositiveBigIntegerField()),
                ('quantity', models.PositiveIntegerField()),
                ('cart_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('expires_at', models.DateTimeField(db_index=True)),
                ('converted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['stockable_type', 'stockable_id'], name='inventory_s_stockab_a47d52_idx'),
                    models.Index(fields=['converted_at', 'expires_at'], name='inventory_s_convert_f2e8b9_idx'),
                ],
            },
        ),
    ]
