# Generated manually for custom field storage

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='DataGroup',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('slug', models.SlugField(max_length=128, unique=True)),
                ('name', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Custom Field Group',
                'verbose_name_plural': 'Custom Field Groups',
            },
        ),
        migrations.CreateModel(
            name='DataField',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('slug', models.SlugField(max_length=128)),
                ('type', models.CharField(choices=[('text', 'Text'), ('select', 'Select'), ('textarea', 'Textarea'), ('checkbox', 'Checkbox'), ('wysiwyg', 'Wysiwyg')], default='text', max_length=32)),
                ('title', models.CharField(help_text='Label, or a translation key for it', max_length=255)),
                ('placeholder', models.CharField(blank=True, default='', max_length=255)),
                ('help_text', models.CharField(blank=True, default='', help_text='Help text shown under the input, or a translation key for it', max_length=255)),
                ('is_editable', models.BooleanField(default=True, help_text='Locked fields can only be changed in development mode')),
                ('is_staff_only', models.BooleanField(default=False, help_text='Hidden from clients')),
                ('validation_rules', models.CharField(blank=True, default='', help_text="Pipe-delimited rules, e.g. 'required|min:3|max:64'", max_length=255)),
                ('custom_regex', models.CharField(blank=True, default='', help_text="Optional pattern the value must match, e.g. '/^[0-9]+$/'", max_length=255)),
                ('value_options', models.TextField(blank=True, default='', help_text='JSON list (or object of value: label) of choices for select fields')),
                ('sort_order', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='fields', to='custom_fields.datagroup')),
            ],
            options={
                'ordering': ['sort_order', 'id'],
            },
        ),
        migrations.AddConstraint(
            model_name='datafield',
            constraint=models.UniqueConstraint(fields=('group', 'slug'), name='custom_fields_unique_group_slug'),
        ),
        migrations.CreateModel(
            name='DataFieldValue',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('model_id', models.PositiveBigIntegerField(db_index=True, help_text='ID of the record (client, server, ...) this value belongs to')),
                ('value', models.TextField(blank=True, default='', help_text='Encrypted value')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('field', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='values', to='custom_fields.datafield')),
            ],
            options={
                'verbose_name': 'Custom Field Value',
                'verbose_name_plural': 'Custom Field Values',
            },
        ),
        migrations.AddIndex(
            model_name='datafieldvalue',
            index=models.Index(fields=['field', 'model_id'], name='custom_fields_value_lookup'),
        ),
    ]
