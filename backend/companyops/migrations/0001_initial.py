# Initial migration for companyops app
import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


PERSON_SET_NULL = dict(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='companyops.personnel')
REQUEST_STATUS = [('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('cancelled', 'Cancelled')]
SHIFT_TYPES = [('shift1', 'Shift 1'), ('shift2', 'Shift 2')]
POSITIONS = [(1, 'Person 1'), (2, 'Person 2')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Personnel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('first_name', models.CharField(max_length=60)),
                ('last_name', models.CharField(db_index=True, max_length=60)),
                ('rank', models.CharField(blank=True, default='', max_length=30)),
                ('email', models.EmailField(blank=True, max_length=254, null=True)),
                ('class_number', models.CharField(blank=True, max_length=5, null=True, validators=[django.core.validators.RegexValidator(message='Class number must look like NN-NN (e.g. 25-03).', regex='^\\d{2}-\\d{2}$')])),
                ('role', models.CharField(choices=[('user', 'User'), ('uniform_admin', 'Uniform Admin'), ('leave_admin', 'Leave Admin'), ('candidate_leadership', 'Candidate Leadership'), ('admin', 'Admin')], db_index=True, default='user', max_length=32)),
                ('fcm_tokens', models.JSONField(blank=True, default=list)),
                ('active', models.BooleanField(db_index=True, default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('user', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='personnel', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Personnel',
                'verbose_name_plural': 'Personnel',
                'ordering': ['last_name', 'first_name'],
                'indexes': [models.Index(fields=['role', 'active'], name='personnel_role_active_idx')],
            },
        ),
        migrations.CreateModel(
            name='CQRosterEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('order', models.PositiveIntegerField(db_index=True)),
                ('shift_type', models.CharField(choices=SHIFT_TYPES, max_length=10)),
                ('position', models.PositiveSmallIntegerField(choices=POSITIONS, default=1)),
                ('name', models.CharField(blank=True, default='', max_length=120)),
                ('personnel', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='roster_entries', to='companyops.personnel')),
            ],
            options={
                'verbose_name': 'CQ roster entry',
                'verbose_name_plural': 'CQ roster',
                'ordering': ['order', 'shift_type', 'position'],
                'constraints': [models.UniqueConstraint(fields=('order', 'shift_type', 'position'), name='uniq_roster_order_shift_position')],
            },
        ),
        migrations.CreateModel(
            name='ScheduleEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField(unique=True)),
                ('day_of_week', models.CharField(blank=True, default='', max_length=10)),
                ('shift1_person1_name', models.CharField(blank=True, default='', max_length=120)),
                ('shift1_person2_name', models.CharField(blank=True, default='', max_length=120)),
                ('shift2_person1_name', models.CharField(blank=True, default='', max_length=120)),
                ('shift2_person2_name', models.CharField(blank=True, default='', max_length=120)),
                ('is_potential_skip_day', models.BooleanField(default=False)),
                ('skip_day_reason', models.CharField(blank=True, max_length=200, null=True)),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('active', 'Active'), ('completed', 'Completed')], db_index=True, default='scheduled', max_length=12)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('shift1_person1', models.ForeignKey(**PERSON_SET_NULL)),
                ('shift1_person2', models.ForeignKey(**PERSON_SET_NULL)),
                ('shift2_person1', models.ForeignKey(**PERSON_SET_NULL)),
                ('shift2_person2', models.ForeignKey(**PERSON_SET_NULL)),
                ('imported_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('updated_by', models.ForeignKey(**PERSON_SET_NULL)),
            ],
            options={
                'verbose_name': 'CQ schedule entry',
                'verbose_name_plural': 'CQ schedule',
                'ordering': ['date'],
                'indexes': [models.Index(fields=['status', 'date'], name='schedule_status_date_idx')],
            },
        ),
        migrations.CreateModel(
            name='ScheduleSkip',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField(db_index=True)),
                ('reason', models.CharField(blank=True, default='', max_length=200)),
                ('skipped_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('skipped_at', models.DateTimeField(auto_now_add=True)),
                ('skipped_by', models.ForeignKey(**PERSON_SET_NULL)),
            ],
            options={
                'verbose_name': 'CQ skip',
                'verbose_name_plural': 'CQ skips',
                'ordering': ['date'],
            },
        ),
        migrations.CreateModel(
            name='SwapRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('requester_name', models.CharField(blank=True, default='', max_length=120)),
                ('schedule_date', models.DateField(blank=True, null=True)),
                ('current_shift_type', models.CharField(choices=SHIFT_TYPES, max_length=10)),
                ('current_position', models.PositiveSmallIntegerField(choices=POSITIONS)),
                ('current_person_name', models.CharField(blank=True, default='', max_length=120)),
                ('proposed_personnel_name', models.CharField(max_length=120)),
                ('reason', models.TextField(blank=True, default='')),
                ('status', models.CharField(choices=REQUEST_STATUS, db_index=True, default='pending', max_length=12)),
                ('approved_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='swap_requests', to='companyops.personnel')),
                ('schedule', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='swap_requests', to='companyops.scheduleentry')),
                ('proposed_personnel', models.ForeignKey(**PERSON_SET_NULL)),
                ('approved_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('rejected_by', models.ForeignKey(**PERSON_SET_NULL)),
            ],
            options={
                'verbose_name': 'CQ swap request',
                'verbose_name_plural': 'CQ swap requests',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status', 'created_at'], name='swap_status_created_idx')],
            },
        ),
        migrations.CreateModel(
            name='LibertyRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('requester_name', models.CharField(blank=True, default='', max_length=120)),
                ('requester_email', models.EmailField(blank=True, max_length=254, null=True)),
                ('locations', models.JSONField(blank=True, default=list)),
                ('custom_location', models.CharField(blank=True, max_length=120, null=True)),
                ('destination', models.CharField(blank=True, default='', max_length=255)),
                ('weekend_date', models.DateField(db_index=True)),
                ('departure_date', models.DateField(blank=True, null=True)),
                ('departure_time', models.TimeField(blank=True, null=True)),
                ('return_date', models.DateField(blank=True, null=True)),
                ('return_time', models.TimeField(blank=True, null=True)),
                ('contact_number', models.CharField(blank=True, max_length=30, null=True)),
                ('purpose', models.CharField(blank=True, max_length=255, null=True)),
                ('notes', models.TextField(blank=True, null=True)),
                ('companions', models.JSONField(blank=True, default=list)),
                ('is_driver', models.BooleanField(default=False)),
                ('passenger_capacity', models.PositiveIntegerField(default=0)),
                ('time_slots', models.JSONField(blank=True, default=list)),
                ('join_requests', models.JSONField(blank=True, default=list)),
                ('status', models.CharField(choices=REQUEST_STATUS, db_index=True, default='pending', max_length=12)),
                ('approved_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('approver_initials', models.CharField(blank=True, default='', max_length=4)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('cancelled_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('cancel_reason', models.CharField(blank=True, max_length=255, null=True)),
                ('created_on_behalf_of', models.BooleanField(default=False)),
                ('created_by_name', models.CharField(blank=True, default='', max_length=120)),
                ('last_edited_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='liberty_requests', to='companyops.personnel')),
                ('approved_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('rejected_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('cancelled_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('created_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('last_edited_by', models.ForeignKey(**PERSON_SET_NULL)),
            ],
            options={
                'verbose_name': 'Liberty request',
                'verbose_name_plural': 'Liberty requests',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['requester', 'weekend_date', 'status'], name='liberty_req_weekend_idx'),
                    models.Index(fields=['status', 'weekend_date'], name='liberty_status_weekend_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Uniform',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=120)),
                ('number', models.CharField(blank=True, default='', max_length=20)),
                ('description', models.TextField(blank=True, default='')),
                ('active', models.BooleanField(default=True)),
            ],
            options={'ordering': ['number', 'name']},
        ),
        migrations.CreateModel(
            name='WeatherRecommendation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('target_date', models.DateField(db_index=True)),
                ('target_slot', models.CharField(choices=[('breakfast', 'Breakfast'), ('lunch', 'Lunch'), ('dinner', 'Dinner')], max_length=10)),
                ('weather', models.JSONField(blank=True, default=dict)),
                ('current_weather', models.JSONField(blank=True, null=True)),
                ('astronomy', models.JSONField(blank=True, null=True)),
                ('uniform_name', models.CharField(blank=True, default='', max_length=120)),
                ('uniform_number', models.CharField(blank=True, default='', max_length=20)),
                ('matched_rule_id', models.CharField(blank=True, max_length=64, null=True)),
                ('matched_rule_name', models.CharField(default='Default', max_length=120)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('superseded', 'Superseded')], db_index=True, default='pending', max_length=12)),
                ('triggered_by', models.CharField(default='scheduled', max_length=10)),
                ('approved_at', models.DateTimeField(blank=True, null=True)),
                ('rejected_at', models.DateTimeField(blank=True, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('superseded_at', models.DateTimeField(blank=True, null=True)),
                ('expires_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('uniform', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='companyops.uniform')),
                ('created_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('approved_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('rejected_by', models.ForeignKey(**PERSON_SET_NULL)),
                ('superseded_by', models.ForeignKey(**PERSON_SET_NULL)),
            ],
            options={
                'verbose_name': 'Weather recommendation',
                'verbose_name_plural': 'Weather recommendations',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('status__in', ['pending', 'approved'])),
                        fields=('target_date', 'target_slot'),
                        name='uniq_active_recommendation_per_slot',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='SettingsDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(choices=[('appConfig', 'Application config'), ('weatherRules', 'Weather rules'), ('weatherLocation', 'Weather location'), ('weatherCache', 'Weather cache'), ('uotdSchedule', 'UOTD schedule')], max_length=40, unique=True)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Settings document',
                'verbose_name_plural': 'Settings documents',
                'ordering': ['key'],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(db_index=True, max_length=50)),
                ('table', models.CharField(db_index=True, max_length=50)),
                ('record_id', models.CharField(max_length=50)),
                ('before', models.JSONField(blank=True, null=True)),
                ('after', models.JSONField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('author', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Audit entry',
                'verbose_name_plural': 'Audit log',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['table', 'created_at'], name='audit_table_created_idx'),
                    models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
                ],
            },
        ),
    ]
