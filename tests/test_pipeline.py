"""
Tests for mapping tables, the extraction pipeline, text recovery and CLI

Run with: pytest tests/ -v
"""

import json
import pytest
from datetime import date
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from click.testing import CliRunner
from pydantic import ValidationError

from crf import (
    CRFExtractionPipeline,
    ExtractionContext,
    MappingConfigurationError,
    MappingEntry,
    MappingLoader,
    MappingSettings,
    MappingTable,
    UpstreamParseError,
    load_mapping_tables,
    run_pipeline,
)
from extractor import read_document_text, normalize_text, get_pdf_info
from main import cli


SMOKING_TABLE = MappingTable.from_pairs(
    "test_form",
    [
        ("Age", "demographics.age"),
        ("Smoking Status", "lifestyle.smoking"),
    ]
)

SAMPLE_INFERTILITY_TEXT = """MALE INFERTILITY CRF
Id: 0001
Scheduled Date: 01/01/2020
Full Name: John  Smith
Age: 34
Occupation: ______________
Marital Status: ☑ Married ☐ Single
Duration of Infertility: 2—3 years
Type of Infertility: ☑ Primary ☐ Secondary
Smoking Status: ☐ Never ☐ Former ☑ Current
Alcohol Use: ☐ None ☑ Occasional ☑ Weekends ☐ Daily
Right Testis Volume (ml): 15
Left Testis Volume (ml): 12
Semen Volume (ml): 2.5
Sperm Concentration (million/ml): 8
FSH: 12.4
LH: 6.1
Diagnosis: Oligospermia → grade II
"""


class TestMappingTable:
    """Tests for mapping table construction and validation."""

    def test_from_pairs(self):
        assert SMOKING_TABLE.labels == ["Age", "Smoking Status"]
        assert SMOKING_TABLE.get_entry("Age") == MappingEntry("Age", "demographics.age")
        assert SMOKING_TABLE.get_entry("Height") is None
        assert len(SMOKING_TABLE) == 2

    def test_default_settings(self):
        settings = MappingSettings()
        assert settings.reserved_labels == frozenset({"Id", "Scheduled Date"})
        assert settings.fixed_paths() == ["patientDetails", "scheduledDate", "crfType"]

    def test_reserved_entries_not_extractable(self):
        table = MappingTable.from_pairs(
            "f", [("Id", "patientDetails"), ("Scheduled Date", "scheduledDate"), ("Age", "age")]
        )
        assert [e.label for e in table.extractable_entries] == ["Age"]

    def test_duplicate_label_rejected(self):
        with pytest.raises(MappingConfigurationError):
            MappingTable.from_pairs("f", [("Age", "a.age"), ("Age", "b.age")])

    def test_prefix_path_collision_rejected(self):
        with pytest.raises(MappingConfigurationError):
            MappingTable.from_pairs("f", [("Age", "demographics"), ("Sex", "demographics.sex")])

    def test_collision_with_fixed_path_rejected(self):
        with pytest.raises(MappingConfigurationError):
            MappingTable.from_pairs("f", [("Type", "crfType.detail")])

    def test_entry_at_fixed_path_rejected(self):
        for path in ("patientDetails", "scheduledDate", "crfType"):
            with pytest.raises(MappingConfigurationError):
                MappingTable.from_pairs("f", [("Patient", path)])

    def test_reserved_entries_at_fixed_paths_allowed(self):
        table = MappingTable.from_pairs("f", [("Id", "patientDetails"), ("Age", "age")])
        assert table.labels == ["Id", "Age"]

    def test_flag_path_kept_without_marker(self):
        settings = MappingSettings(variant_marker_label=None)
        assert settings.fixed_paths() == ["patientDetails", "scheduledDate", "crfType"]

    def test_same_path_for_two_labels_allowed(self):
        table = MappingTable.from_pairs("f", [("Age", "demographics.age"), ("Age (years)", "demographics.age")])
        assert len(table) == 2

    def test_entry_requires_label_and_path(self):
        with pytest.raises(MappingConfigurationError):
            MappingEntry.from_dict({'label': 'Age'})
        with pytest.raises(MappingConfigurationError):
            MappingEntry.from_dict({'path': 'demographics.age'})
        with pytest.raises(MappingConfigurationError):
            MappingEntry.from_dict({'label': 'Age', 'path': 'demographics..age'})

    def test_from_dict_settings(self):
        table = MappingTable.from_dict({
            'form_type': 'custom',
            'settings': {
                'subject_id': {'label': 'Subject No', 'path': 'subject.id'},
                'variant_marker': None,
            },
            'fields': [{'label': 'Age', 'path': 'age'}],
        })
        assert table.settings.subject_id_label == "Subject No"
        assert table.settings.subject_id_path == "subject.id"
        assert table.settings.scheduled_date_label == "Scheduled Date"
        assert table.settings.variant_marker_label is None
        assert table.display_name == "custom"

    def test_table_is_immutable(self):
        with pytest.raises(AttributeError):
            SMOKING_TABLE.form_type = "other"


class TestMappingLoader:
    """Tests for loading mapping tables from YAML."""

    def setup_method(self):
        self.loader = MappingLoader()

    def test_load_yaml(self, tmp_path):
        config = tmp_path / "demo.yaml"
        config.write_text(
            "display_name: Demo\n"
            "fields:\n"
            "  - label: Age\n"
            "    path: demographics.age\n",
            encoding='utf-8'
        )
        table = self.loader.load(config)
        assert table.form_type == "demo"
        assert table.display_name == "Demo"
        assert table.entries == (MappingEntry("Age", "demographics.age"),)

    def test_invalid_yaml(self, tmp_path):
        config = tmp_path / "broken.yaml"
        config.write_text("fields: [unclosed", encoding='utf-8')
        with pytest.raises(MappingConfigurationError):
            self.loader.load(config)

    def test_missing_file(self, tmp_path):
        with pytest.raises(MappingConfigurationError):
            self.loader.load(tmp_path / "absent.yaml")

    def test_settings_section_must_be_mapping(self, tmp_path):
        bad_sections = [
            "settings: [subject_id]\n",
            "settings:\n  variant_marker: Smoking Status\n",
            "settings:\n  subject_id: Id\n",
            "settings:\n  scheduled_date: 42\n",
            "settings:\n  subject_id: {label: Id, path: 7}\n",
        ]
        for index, section in enumerate(bad_sections):
            config = tmp_path / f"bad_{index}.yaml"
            config.write_text(
                section + "fields:\n  - {label: Age, path: age}\n",
                encoding='utf-8'
            )
            with pytest.raises(MappingConfigurationError):
                self.loader.load(config)

    def test_duplicate_form_type_in_directory(self, tmp_path):
        for name in ("one.yaml", "two.yaml"):
            (tmp_path / name).write_text(
                "form_type: same\nfields:\n  - {label: Age, path: age}\n",
                encoding='utf-8'
            )
        with pytest.raises(MappingConfigurationError):
            self.loader.load_directory(tmp_path)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(MappingConfigurationError):
            self.loader.load_directory(tmp_path / "nope")

    def test_bundled_tables(self):
        tables = load_mapping_tables()
        assert set(tables) == {"male_infertility", "male_sexual_dysfunction"}

        infertility = tables["male_infertility"]
        assert infertility.settings.variant_marker_label == "Smoking Status"
        assert infertility.get_entry("Age").path == "demographics.age"
        assert infertility.get_entry("Full Name").path == "demographics.fullName"

        dysfunction = tables["male_sexual_dysfunction"]
        assert dysfunction.settings.variant_marker_label is None


class TestExtractionContext:
    """Tests for caller-supplied context."""

    def test_values_trimmed(self):
        context = ExtractionContext(patient_id=" P-1 ", scheduled_date=" 03/27/2024 ")
        assert context.patient_id == "P-1"
        assert context.scheduled_date == "03/27/2024"

    def test_blank_patient_id_rejected(self):
        with pytest.raises(ValidationError):
            ExtractionContext(patient_id="   ")

    def test_scheduled_date_defaults_to_today(self):
        expected = date.today().strftime("%m/%d/%Y")
        assert ExtractionContext(patient_id="P-1").scheduled_date == expected
        assert ExtractionContext(patient_id="P-1", scheduled_date="").scheduled_date == expected


class TestCRFExtractionPipeline:
    """Tests for the end-to-end pipeline."""

    def setup_method(self):
        self.pipeline = CRFExtractionPipeline()
        self.context = ExtractionContext(patient_id="patientId", scheduled_date="03/27/2024")

    def test_end_to_end(self):
        text = "Age: 34\nSmoking Status: ☐ Never ☑ Current\n"
        result = self.pipeline.run(text, SMOKING_TABLE, self.context)
        assert result == {
            'patientDetails': 'patientId',
            'scheduledDate': '03/27/2024',
            'demographics': {'age': '34'},
            'lifestyle': {'smoking': 'Current'},
            'crfType': True,
        }

    def test_no_labels_found(self):
        result = self.pipeline.run("Nothing relevant here", SMOKING_TABLE, self.context)
        assert result == {
            'patientDetails': 'patientId',
            'scheduledDate': '03/27/2024',
            'crfType': '',
        }

    def test_empty_text(self):
        result = self.pipeline.run("", SMOKING_TABLE, self.context)
        assert set(result) == {'patientDetails', 'scheduledDate', 'crfType'}

    def test_marker_flag_false_when_marker_missing(self):
        result = self.pipeline.run("Age: 34", SMOKING_TABLE, self.context)
        assert result['crfType'] == ''
        assert result['demographics'] == {'age': '34'}

    def test_no_marker_configured_writes_unset_flag(self):
        table = MappingTable.from_pairs(
            "f", [("Smoking Status", "lifestyle.smoking")],
            settings=MappingSettings(variant_marker_label=None)
        )
        report = self.pipeline.run_with_report("Smoking Status: ☑ Current", table, self.context)
        assert report.document['crfType'] == ''
        assert report.variant_flag is False

    def test_reserved_labels_come_from_context(self):
        table = MappingTable.from_pairs(
            "f", [("Id", "patientDetails"), ("Scheduled Date", "scheduledDate"), ("Age", "demographics.age")]
        )
        text = "Id: 9999\nScheduled Date: 01/01/2020\nAge: 34"
        report = self.pipeline.run_with_report(text, table, self.context)
        assert report.document['patientDetails'] == 'patientId'
        assert report.document['scheduledDate'] == '03/27/2024'
        assert report.skipped_labels == ["Id", "Scheduled Date"]

    def test_context_not_overwritten_by_text(self):
        with pytest.raises(MappingConfigurationError):
            MappingTable.from_pairs("f", [("Patient", "patientDetails")])
        table = MappingTable.from_pairs("f", [("Id", "patientDetails")])
        result = self.pipeline.run("Id: Someone Else", table, self.context)
        assert result['patientDetails'] == 'patientId'

    def test_duplicate_labels_first_wins(self):
        text = "Age: 34\nSmoking Status: ☑ Never ☐ Current\nAge: 50\nSmoking Status: ☐ Never ☑ Current"
        report = self.pipeline.run_with_report(text, SMOKING_TABLE, self.context)
        assert report.document['demographics']['age'] == '34'
        assert report.document['lifestyle']['smoking'] == 'Never'
        assert report.duplicate_labels == ["Age", "Smoking Status"]

    def test_values_are_cleaned(self):
        text = "Age: 34  years\nSmoking Status: ____"
        result = self.pipeline.run(text, SMOKING_TABLE, self.context)
        assert result['demographics']['age'] == '34 years'
        assert result['lifestyle']['smoking'] == ''
        assert result['crfType'] is True

    def test_report(self):
        report = self.pipeline.run_with_report("Age: 34", SMOKING_TABLE, self.context)
        assert report.matched_labels == ["Age"]
        assert report.missing_labels == ["Smoking Status"]
        assert report.extraction_rate == 0.5
        assert report.variant_flag is False
        data = report.to_dict()
        assert data['form_type'] == "test_form"
        assert data['extraction_rate'] == 0.5

    def test_runtime_collision_raises(self):
        # Bypass load-time validation to simulate a colliding table
        table = MappingTable.from_pairs("f", [("Age", "demographics.age")])
        object.__setattr__(table, 'entries', (
            MappingEntry("Age", "demographics"),
            MappingEntry("Sex", "demographics.sex"),
        ))
        with pytest.raises(MappingConfigurationError):
            self.pipeline.run("Age: 34\nSex: Male", table, self.context)

    def test_runs_are_independent(self):
        first = self.pipeline.run("Age: 34", SMOKING_TABLE, self.context)
        second = self.pipeline.run("Smoking Status: ☑ Former", SMOKING_TABLE, self.context)
        assert 'lifestyle' not in first
        assert 'demographics' not in second

    def test_bundled_infertility_form(self):
        table = load_mapping_tables()["male_infertility"]
        result = self.pipeline.run(SAMPLE_INFERTILITY_TEXT, table, self.context)

        assert result['patientDetails'] == 'patientId'
        assert result['scheduledDate'] == '03/27/2024'
        assert result['crfType'] is True
        assert result['demographics'] == {
            'fullName': 'John Smith',
            'age': '34',
            'occupation': '',
            'maritalStatus': 'Married',
        }
        assert result['history'] == {
            'infertilityDuration': '2-3 years',
            'infertilityType': 'Primary',
        }
        assert result['lifestyle'] == {
            'smoking': 'Current',
            'alcohol': 'Occasional, Weekends',
        }
        assert result['examination'] == {
            'testicularVolume': {'right': '15', 'left': '12'},
        }
        assert result['semenAnalysis'] == {'volume': '2.5', 'concentration': '8'}
        assert result['hormones'] == {'fsh': '12.4', 'lh': '6.1'}
        assert result['assessment'] == {'diagnosis': 'Oligospermia grade II'}

    def test_run_pipeline_function(self):
        result = run_pipeline("Age: 34", SMOKING_TABLE, patient_id="P-7", scheduled_date="01/02/2024")
        assert result['patientDetails'] == 'P-7'
        assert result['demographics'] == {'age': '34'}


class TestDocumentText:
    """Tests for upstream text recovery."""

    def test_plain_text_file(self, tmp_path):
        source = tmp_path / "crf.txt"
        source.write_text("Age: 34\r\nSmoking Status: ☑ Current\r\n", encoding='utf-8')
        text = read_document_text(source)
        assert text == "Age: 34\nSmoking Status: ☑ Current\n"

    def test_empty_text_file(self, tmp_path):
        source = tmp_path / "empty.txt"
        source.write_text("   \n", encoding='utf-8')
        with pytest.raises(UpstreamParseError):
            read_document_text(source)

    def test_not_a_pdf(self, tmp_path):
        source = tmp_path / "fake.pdf"
        source.write_bytes(b"this is not a pdf")
        with pytest.raises(UpstreamParseError) as exc_info:
            read_document_text(source)
        assert exc_info.value.source == str(source)

    def test_missing_file(self, tmp_path):
        with pytest.raises(UpstreamParseError):
            read_document_text(tmp_path / "absent.pdf")

    def test_pdf_info(self, tmp_path):
        source = tmp_path / "header.pdf"
        source.write_bytes(b"%PDF-1.7\n")
        info = get_pdf_info(source)
        assert info['exists']
        assert info['readable']

    def test_normalize_text_keeps_glyphs(self):
        text = "Name: John\r\nStatus: ☐ No ☑ Yes — ok  \n\n\n\nEnd"
        assert normalize_text(text) == "Name: John\nStatus: ☐ No ☑ Yes — ok\n\nEnd"

    def test_normalize_ligatures(self):
        assert normalize_text("Proﬁle") == "Profile"


class TestCLI:
    """Tests for the command-line interface."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_extract_text_file(self, tmp_path):
        source = tmp_path / "crf.txt"
        source.write_text(SAMPLE_INFERTILITY_TEXT, encoding='utf-8')
        output = tmp_path / "out.json"
        report = tmp_path / "report.json"

        result = self.runner.invoke(cli, [
            'extract', '-i', str(source), '-f', 'male_infertility',
            '--patient-id', 'P-42', '--scheduled-date', '03/27/2024',
            '-o', str(output), '--json-report', str(report),
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding='utf-8'))
        assert data['patientDetails'] == 'P-42'
        assert data['lifestyle']['smoking'] == 'Current'

        report_data = json.loads(report.read_text(encoding='utf-8'))
        assert report_data['form_type'] == 'male_infertility'
        assert 'Age' in report_data['matched_labels']

    def test_extract_directory(self, tmp_path):
        crfs = tmp_path / "crfs"
        crfs.mkdir()
        (crfs / "a.txt").write_text("Age: 34\n", encoding='utf-8')
        (crfs / "b.txt").write_text("Age: 40\n", encoding='utf-8')
        (crfs / "c.txt").write_text("\n", encoding='utf-8')
        output = tmp_path / "out.json"

        result = self.runner.invoke(cli, [
            'extract', '-i', str(crfs), '-f', 'male_sexual_dysfunction', '-o', str(output),
        ])

        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding='utf-8'))
        assert [d['source_file'] for d in data] == ['a.txt', 'b.txt']
        assert data[1]['crf_data']['demographics'] == {'age': '40'}

    def test_bad_input_file(self, tmp_path):
        source = tmp_path / "fake.pdf"
        source.write_bytes(b"garbage")

        result = self.runner.invoke(cli, ['extract', '-i', str(source), '-f', 'male_infertility'])

        assert result.exit_code == 1
        assert "Bad input file" in result.output

    def test_unknown_form_type(self, tmp_path):
        source = tmp_path / "crf.txt"
        source.write_text("Age: 34\n", encoding='utf-8')

        result = self.runner.invoke(cli, ['extract', '-i', str(source), '-f', 'cardiology'])

        assert result.exit_code == 1
        assert "Bad mapping configuration" in result.output

    def test_list_forms(self):
        result = self.runner.invoke(cli, ['list-forms'])
        assert result.exit_code == 0, result.output
        assert "male_infertility" in result.output
        assert "male_sexual_dysfunction" in result.output

    def test_list_forms_bad_settings(self, tmp_path):
        (tmp_path / "broken.yaml").write_text(
            "settings:\n  variant_marker: Smoking Status\n"
            "fields:\n  - {label: Age, path: age}\n",
            encoding='utf-8'
        )
        result = self.runner.invoke(cli, ['list-forms', '--mappings', str(tmp_path)])
        assert result.exit_code == 1
        assert "Bad mapping configuration" in result.output


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
