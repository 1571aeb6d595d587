"""
会话状态存储单元测试
"""
import pytest

from core.session_store import SessionStore, WorkflowStep
from utils.structured_output_models import StoryboardScene, GenerationStatus


class TestSessionStore:

    @pytest.mark.unit
    def test_initial_state(self, session_store):
        state = session_store.state
        assert state.current_step == WorkflowStep.INPUT
        assert state.scenes == [] and state.storyboard_scenes == []
        assert state.is_generating is False
        assert session_store.storyboard_progress() == 0.0

    @pytest.mark.unit
    def test_update_builds_new_list(self, session_store, scene_factory):
        scenes = [StoryboardScene.from_scene(s) for s in scene_factory(3)]
        session_store.set_storyboard_scenes(scenes)
        before = session_store.state.storyboard_scenes

        updated = session_store.update_storyboard_scene(2, generation_status=GenerationStatus.GENERATING)

        after = session_store.state.storyboard_scenes
        assert updated.generation_status == GenerationStatus.GENERATING
        assert after is not before
        assert before[1].generation_status == GenerationStatus.PENDING
        assert after[1] is updated
        assert after[0] is before[0]

    @pytest.mark.unit
    def test_update_missing_scene_returns_none(self, session_store, scene_factory):
        session_store.set_storyboard_scenes([StoryboardScene.from_scene(s) for s in scene_factory(2)])
        before = session_store.state

        assert session_store.update_storyboard_scene(9, error_message="x") is None
        assert session_store.state is before

    @pytest.mark.unit
    def test_replace_and_get(self, session_store, scene_factory):
        scenes = [StoryboardScene.from_scene(s) for s in scene_factory(2)]
        session_store.set_storyboard_scenes(scenes)

        before = session_store.state.storyboard_scenes
        done = scenes[0].as_completed("https://images.test/x.png", pool_index=0)

        assert session_store.replace_storyboard_scene(done) is done

        assert session_store.get_storyboard_scene(1) is done
        assert session_store.state.storyboard_scenes is not before
        assert before[0].generation_status == GenerationStatus.PENDING
        assert session_store.get_storyboard_scene(1).image_url == "https://images.test/x.png"
        assert session_store.get_storyboard_scene(5) is None
        assert session_store.storyboard_progress() == 0.5

    @pytest.mark.unit
    def test_replace_unknown_scene_returns_none(self, session_store, scene_factory):
        scenes = [StoryboardScene.from_scene(s) for s in scene_factory(2)]
        session_store.set_storyboard_scenes(scenes)
        before = session_store.state
        stray = StoryboardScene.from_scene(scene_factory(7)[6])

        assert session_store.replace_storyboard_scene(stray) is None
        assert session_store.state is before

    @pytest.mark.unit
    def test_progress_counts_errors_as_done(self, session_store, scene_factory):
        scenes = [StoryboardScene.from_scene(s) for s in scene_factory(4)]
        scenes[0] = scenes[0].as_error("boom")
        scenes[1] = scenes[1].as_completed("https://images.test/1.png")
        scenes[2] = scenes[2].as_generating()
        session_store.set_storyboard_scenes(scenes)

        assert session_store.storyboard_progress() == 0.5

    @pytest.mark.unit
    def test_progress_value_is_clamped(self, session_store):
        session_store.set_scene_generation_progress(1.7)
        assert session_store.state.scene_generation_progress == 1.0
        session_store.set_scene_generation_progress(-0.2)
        assert session_store.state.scene_generation_progress == 0.0

    @pytest.mark.unit
    def test_errors_and_reset(self, session_store, scene_factory):
        session_store.add_error("first")
        session_store.add_error("second")
        session_store.set_step(WorkflowStep.SCENES)
        session_store.set_scenes(scene_factory(2))
        assert session_store.state.errors == ["first", "second"]

        session_store.clear_errors()
        assert session_store.state.errors == []

        session_store.reset()
        assert session_store.state.current_step == WorkflowStep.INPUT
        assert session_store.state.scenes == []

    @pytest.mark.unit
    def test_step_accepts_int(self, session_store):
        session_store.set_step(3)
        assert session_store.state.current_step is WorkflowStep.SCRIPT
