import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models

import marketplace.models
import marketplace.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('auth', '0012_alter_user_first_name_max_length'),
    ]

    operations = [
        migrations.CreateModel(
            name='Profile',
            fields=[
                ('password', models.CharField(max_length=128, verbose_name='password')),
                ('last_login', models.DateTimeField(blank=True, null=True, verbose_name='last login')),
                ('is_superuser', models.BooleanField(default=False, help_text='Designates that this user has all permissions without explicitly assigning them.', verbose_name='superuser status')),
                ('first_name', models.CharField(blank=True, max_length=150, verbose_name='first name')),
                ('last_name', models.CharField(blank=True, max_length=150, verbose_name='last name')),
                ('email', models.EmailField(blank=True, max_length=254, verbose_name='email address')),
                ('is_staff', models.BooleanField(default=False, help_text='Designates whether the user can log into this admin site.', verbose_name='staff status')),
                ('is_active', models.BooleanField(default=True, help_text='Designates whether this user should be treated as active. Unselect this instead of deleting accounts.', verbose_name='active')),
                ('date_joined', models.DateTimeField(default=django.utils.timezone.now, verbose_name='date joined')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('phone', models.CharField(error_messages={'unique': 'A profile with that phone number already exists.'}, help_text='Normalized Portuguese phone number (351XXXXXXXXX).', max_length=15, unique=True, validators=[marketplace.validators.validate_phone_number], verbose_name='phone number')),
                ('display_name', models.CharField(blank=True, default='', help_text='Name shown to other users.', max_length=100, verbose_name='display name')),
                ('date_of_birth', models.DateField(blank=True, null=True, verbose_name='date of birth')),
                ('district', models.CharField(blank=True, default='', help_text='Portuguese district the user lives in.', max_length=50, validators=[marketplace.validators.validate_district], verbose_name='district')),
                ('registration_complete', models.BooleanField(default=False, help_text='Whether the user finished the onboarding form.', verbose_name='registration complete')),
                ('is_admin', models.BooleanField(default=False, help_text='Admins validate offers and fulfill requests.', verbose_name='marketplace admin')),
                ('points', models.PositiveIntegerField(default=0, verbose_name='points')),
                ('level', models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)], verbose_name='level')),
                ('tier', models.PositiveSmallIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)], verbose_name='tier')),
                ('stamp_balance', models.IntegerField(default=0, verbose_name='stamp balance')),
                ('weekly_stamps_requested', models.PositiveIntegerField(default=0, verbose_name='stamps requested this week')),
                ('weekly_reset_at', models.DateTimeField(default=marketplace.models.default_weekly_reset_at, help_text='When the weekly request counter next resets.', verbose_name='weekly reset at')),
                ('total_offered', models.PositiveIntegerField(default=0, verbose_name='total offered')),
                ('total_requested', models.PositiveIntegerField(default=0, verbose_name='total requested')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('groups', models.ManyToManyField(blank=True, help_text='The groups this user belongs to. A user will get all permissions granted to each of their groups.', related_name='user_set', related_query_name='user', to='auth.group', verbose_name='groups')),
                ('user_permissions', models.ManyToManyField(blank=True, help_text='Specific permissions for this user.', related_name='user_set', related_query_name='user', to='auth.permission', verbose_name='user permissions')),
            ],
            options={
                'verbose_name': 'profile',
                'verbose_name_plural': 'profiles',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['points'], name='profile_points_idx'),
                    models.Index(fields=['district'], name='profile_district_idx'),
                ],
            },
            managers=[
                ('objects', marketplace.models.ProfileManager()),
            ],
        ),
        migrations.CreateModel(
            name='AppSettings',
            fields=[
                ('id', models.CharField(default='global', editable=False, max_length=20, primary_key=True, serialize=False)),
                ('admin_device_phone', models.CharField(blank=True, default='', help_text='Phone number users send their stamps to.', max_length=20, verbose_name='admin device phone')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'app settings',
                'verbose_name_plural': 'app settings',
            },
        ),
        migrations.CreateModel(
            name='OtpCode',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('phone', models.CharField(max_length=15, verbose_name='phone number')),
                ('code', models.CharField(max_length=6, verbose_name='code')),
                ('expires_at', models.DateTimeField(verbose_name='expires at')),
                ('attempts', models.PositiveSmallIntegerField(default=0, verbose_name='attempts')),
                ('used', models.BooleanField(default=False, verbose_name='used')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
            ],
            options={
                'verbose_name': 'OTP code',
                'verbose_name_plural': 'OTP codes',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['phone', 'used'], name='otp_phone_used_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StampCollection',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100, verbose_name='name')),
                ('description', models.TextField(blank=True, default='', verbose_name='description')),
                ('image_url', models.URLField(blank=True, default='', max_length=500, verbose_name='image URL')),
                ('starts_at', models.DateField(verbose_name='starts at')),
                ('ends_at', models.DateField(verbose_name='ends at')),
                ('is_active', models.BooleanField(default=True, verbose_name='active')),
                ('sort_order', models.IntegerField(default=0, verbose_name='sort order')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_collections', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'stamp collection',
                'verbose_name_plural': 'stamp collections',
                'ordering': ['sort_order', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='CollectionItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=100, verbose_name='name')),
                ('subtitle', models.CharField(blank=True, default='', max_length=200, verbose_name='subtitle')),
                ('image_url', models.URLField(blank=True, default='', max_length=500, verbose_name='image URL')),
                ('sort_order', models.IntegerField(default=0, verbose_name='sort order')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('collection', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='marketplace.stampcollection')),
            ],
            options={
                'verbose_name': 'collection item',
                'verbose_name_plural': 'collection items',
                'ordering': ['sort_order', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='RedemptionOption',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('stamps_required', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name='stamps required')),
                ('fee_euros', models.DecimalField(decimal_places=2, default=0, max_digits=8, validators=[django.core.validators.MinValueValidator(0)], verbose_name='fee (EUR)')),
                ('label', models.CharField(blank=True, default='', max_length=100, verbose_name='label')),
                ('sort_order', models.IntegerField(default=0, verbose_name='sort order')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='options', to='marketplace.collectionitem')),
            ],
            options={
                'verbose_name': 'redemption option',
                'verbose_name_plural': 'redemption options',
                'ordering': ['sort_order', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='StampListing',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('type', models.CharField(choices=[('offer', 'Offer'), ('request', 'Request')], max_length=10, verbose_name='type')),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1, message='Quantity must be at least 1.')], verbose_name='quantity')),
                ('collection', models.CharField(blank=True, default='', max_length=100, verbose_name='collection')),
                ('notes', models.TextField(blank=True, default='', max_length=500, verbose_name='notes')),
                ('status', models.CharField(choices=[('pending_send', 'Pending Send'), ('pending_validation', 'Pending Validation'), ('active', 'Active'), ('fulfilled', 'Fulfilled'), ('cancelled', 'Cancelled'), ('expired', 'Expired'), ('rejected', 'Rejected')], max_length=20, verbose_name='status')),
                ('fulfilled_at', models.DateTimeField(blank=True, null=True, verbose_name='fulfilled at')),
                ('validated_at', models.DateTimeField(blank=True, null=True, verbose_name='validated at')),
                ('rejection_reason', models.TextField(blank=True, default='', max_length=500, verbose_name='rejection reason')),
                ('expires_at', models.DateTimeField(default=marketplace.models.default_listing_expires_at, verbose_name='expires at')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('fulfilled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='fulfilled_listings', to=settings.AUTH_USER_MODEL)),
                ('user', models.ForeignKey(help_text='Profile that posted the listing', on_delete=django.db.models.deletion.CASCADE, related_name='listings', to=settings.AUTH_USER_MODEL)),
                ('validated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='validated_listings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'stamp listing',
                'verbose_name_plural': 'stamp listings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'status'], name='listing_user_status_idx'),
                    models.Index(fields=['type', 'status'], name='listing_type_status_idx'),
                    models.Index(fields=['expires_at'], name='listing_expires_at_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('status__in', ['pending_send', 'pending_validation', 'active'])), fields=('user',), name='unique_open_listing_per_user'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StampTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField(verbose_name='quantity')),
                ('points_from', models.PositiveIntegerField(default=0, verbose_name='points credited to sender')),
                ('points_to', models.PositiveIntegerField(default=0, verbose_name='points credited to receiver')),
                ('type', models.CharField(choices=[('offer', 'Offer'), ('request', 'Request')], max_length=10, verbose_name='type')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('from_user', models.ForeignKey(help_text='Profile that supplied the stamps', on_delete=django.db.models.deletion.PROTECT, related_name='outgoing_transactions', to=settings.AUTH_USER_MODEL)),
                ('listing', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='stamp_transaction', to='marketplace.stamplisting')),
                ('to_user', models.ForeignKey(help_text='Profile that received the stamps', on_delete=django.db.models.deletion.PROTECT, related_name='incoming_transactions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'stamp transaction',
                'verbose_name_plural': 'stamp transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['from_user'], name='stamptx_from_user_idx'),
                    models.Index(fields=['to_user'], name='stamptx_to_user_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=[('listing_created', 'Listing Created'), ('listing_cancelled', 'Listing Cancelled'), ('listing_approved', 'Listing Approved'), ('listing_quantity_adjusted', 'Listing Quantity Adjusted'), ('listing_rejected', 'Listing Rejected'), ('listing_fulfilled', 'Listing Fulfilled'), ('listing_expired', 'Listing Expired'), ('settings_updated', 'Settings Updated')], max_length=40, verbose_name='action')),
                ('entity_type', models.CharField(max_length=40, verbose_name='entity type')),
                ('entity_id', models.CharField(max_length=64, verbose_name='entity id')),
                ('old_value', models.JSONField(blank=True, null=True, verbose_name='old value')),
                ('new_value', models.JSONField(blank=True, null=True, verbose_name='new value')),
                ('metadata', models.JSONField(blank=True, null=True, verbose_name='metadata')),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True, verbose_name='IP address')),
                ('user_agent', models.CharField(blank=True, default='', max_length=500, verbose_name='user agent')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_actions', to=settings.AUTH_USER_MODEL)),
                ('target_user', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='audit_entries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'audit log entry',
                'verbose_name_plural': 'audit log entries',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['entity_type', 'entity_id'], name='audit_entity_idx'),
                    models.Index(fields=['action'], name='audit_action_idx'),
                    models.Index(fields=['actor'], name='audit_actor_idx'),
                ],
            },
        ),
    ]
