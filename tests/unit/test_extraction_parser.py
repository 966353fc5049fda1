import pytest

from app.features.mail_triage.pipeline.extraction.parser import (
    ExtractionParseError,
    decode_json_object,
    parse_job_record,
    strip_code_fence,
)
from app.features.mail_triage.pipeline.extraction.prompts import (
    build_job_extraction_prompt,
    build_type_detection_prompt,
)


def test_strip_code_fence_handles_fenced_and_plain_text():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'


def test_top_level_array_yields_first_element():
    assert decode_json_object('[{"title": "A"}, {"title": "B"}]') == {"title": "A"}


@pytest.mark.parametrize("text", ["[]", "not json", '"just a string"', "42"])
def test_unusable_output_raises(text):
    with pytest.raises(ExtractionParseError):
        decode_json_object(text)


def test_parse_job_record_normalizes_fields():
    record = parse_job_record(
        """```json
        {
          "title": "  React/TypeScript フロントエンドエンジニア ",
          "company": "",
          "grade": "プロジェクトマネージャー",
          "location": "東京都渋谷区",
          "unitPrice": "80万～100万",
          "recruitmentCount": "2名",
          "summary": "%s",
          "description": "SaaSのフロント開発",
          "skills": ["React", "TypeScript"]
        }
        ```"""
        % ("あ" * 250)
    )

    assert record.title == "React/TypeScript フロントエンドエンジニア"
    assert record.company is None
    assert record.grade == "PM"
    assert record.unit_price == 100
    assert record.recruitment_count == 2
    assert len(record.summary) == 200
    assert record.skills == ["React", "TypeScript"]


def test_missing_or_unknown_grade_defaults_to_se():
    assert parse_job_record('{"title": "A"}').grade == "SE"
    assert parse_job_record('{"title": "A", "grade": "部長"}').grade == "SE"
    assert parse_job_record('{"title": "A", "grade": null}').grade == "SE"


def test_missing_title_parses_as_empty():
    assert parse_job_record('{"company": "X"}').title == ""


def test_numeric_unit_price_in_yen_is_scaled():
    assert parse_job_record('{"title": "A", "unitPrice": 650000}').unit_price == 65


def test_comma_separated_skills_are_split():
    assert parse_job_record('{"title": "A", "skills": "Java, AWS ,"}').skills == ["Java", "AWS"]


def test_null_skill_entries_are_dropped():
    assert parse_job_record('{"title": "A", "skills": ["Java", null, " ", "AWS"]}').skills == ["Java", "AWS"]


def test_prompts_embed_subject_and_body():
    job_prompt = build_job_extraction_prompt("件名{x}", "本文")
    type_prompt = build_type_detection_prompt("件名", "本文")

    assert "件名{x}" in job_prompt
    assert "recruitmentCount" in job_prompt
    assert '"grade": "SE"' in job_prompt
    assert '{"type": "job"}' in type_prompt
