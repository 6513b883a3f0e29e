import pytest

from assetflow import build, declare, group, task
from assetflow.model import Task
from assetflow.transforms import copy


def test_builder_and_helper_produce_the_same_task():
    built = (
        build("views")
        .source("dev/views/*.html")
        .to("build")
        .using(copy)
        .depends_on("favicons", "svg")
        .with_inputs("dev/views/partials/*.html")
        .relative_to("dev/views")
        .unwatched()
        .build()
    )
    declared = task(
        "views",
        "dev/views/*.html",
        "build",
        copy,
        needs=["favicons", "svg"],
        inputs="dev/views/partials/*.html",
        base="dev/views",
        watch=False,
    )
    assert built == declared
    assert isinstance(built, Task)


def test_builder_requires_destination_for_sources():
    with pytest.raises(ValueError, match="no destination"):
        build("fonts").source("dev/fonts/*").using(copy).build()


def test_aggregate_task_has_no_sources():
    t = build("package").depends_on("styles", "views").build()
    assert t.sources == []
    assert t.needs == ["styles", "views"]
    assert t.watch


def test_declare_collects_tasks_and_groups():
    pl = declare(task("a"), task("b", needs="a"), groups={"default": group("b"), "one": "a"})
    assert [t.name for t in pl.tasks] == ["a", "b"]
    assert pl.groups == {"default": ["b"], "one": ["a"]}
