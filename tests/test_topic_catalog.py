"""Tests for the curriculum topic catalog."""
from app.infrastructure.topic_catalog import TopicCatalog, get_topic_catalog


class TestTopicDisplayNames:
    """Test topic path labelling."""

    def test_known_path_uses_curriculum_names(self):
        catalog = get_topic_catalog()
        assert (
            catalog.get_topic_display_name("statistics/data_analysis/averages")
            == "Statistics and Probability → Data Analysis → Averages"
        )

    def test_unknown_path_falls_back_to_spaced_path(self):
        catalog = get_topic_catalog()
        assert catalog.get_topic_display_name("custom/my_topic/x") == "custom my topic x"

    def test_custom_curriculum(self):
        catalog = TopicCatalog({
            "strands": [{
                "id": "s", "name": "Strand",
                "chapters": [{
                    "id": "c", "name": "Chapter",
                    "subtopics": [{"id": "t", "name": "Topic"}],
                }],
            }],
        })
        assert catalog.get_topic_display_name("s/c/t") == "Strand → Chapter → Topic"
        assert catalog.get_topic_display_name("number/number_operations/integers") == "number number operations integers"


class TestTopicListing:
    """Test the flat topic option list."""

    def test_lists_every_subtopic(self):
        options = get_topic_catalog().list_all_topic_paths()
        paths = [o["path"] for o in options]

        assert "algebra/equations/linear_equations" in paths
        assert len(paths) == len(set(paths))
        assert all(set(o) == {"path", "label", "strand", "chapter"} for o in options)

    def test_custom_curriculum_options(self):
        catalog = TopicCatalog({
            "strands": [{
                "id": "s", "name": "Strand",
                "chapters": [{"id": "c", "name": "Chapter", "subtopics": [{"id": "t", "name": "Topic"}]}],
            }],
        })
        assert [o["path"] for o in catalog.list_all_topic_paths()] == ["s/c/t"]
