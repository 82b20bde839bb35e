from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='QueuedBooking',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rider_id', models.CharField(db_index=True, max_length=64)),
                ('payload', models.JSONField()),
                ('queued_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'queued_bookings',
                'ordering': ['queued_at', 'id'],
            },
        ),
        migrations.CreateModel(
            name='RideHistoryCache',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('rider_id', models.CharField(max_length=64, unique=True)),
                ('rides', models.JSONField(default=list)),
                ('refreshed_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'ride_history_cache',
            },
        ),
    ]
