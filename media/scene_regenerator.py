"""
场景重新生成控制器 - 单个场景重绘与失败场景批量重试
"""
import logging
from typing import Callable, List, Optional, Sequence

from media.image_generator import ImageGenerator, ImageGenerationRequest
from utils.structured_output_models import StoryboardScene, GenerationStatus

SceneCallback = Callable[[StoryboardScene], None]


class SceneRegenerator:
    """
    重新生成控制器

    - 发起请求前先发布 generating 状态（is_regenerating=True）
    - 单次尝试；失败时保留原有 image_url
    - 成功后 visual_prompt 替换为实际使用的提示词，新图不再属于图片池
    """

    def __init__(self, image_generator: ImageGenerator):
        self.image_generator = image_generator
        self.logger = logging.getLogger('storyboard.media')

    async def regenerate(self, scene: StoryboardScene, new_prompt: Optional[str] = None,
                         on_update: Optional[SceneCallback] = None) -> StoryboardScene:
        """重新生成单个场景，返回最终状态的场景（不抛出提供商错误）"""
        prompt = scene.visual_prompt if new_prompt is None else new_prompt

        pending = scene.as_generating().model_copy(update={'is_regenerating': True})
        if on_update:
            on_update(pending)

        self.logger.info(f"🔄 Regenerating scene {scene.scene_number}")

        try:
            image = await self.image_generator.generate(
                ImageGenerationRequest(prompt=prompt, scene_number=scene.scene_number)
            )
        except Exception as e:
            message = f"Failed to regenerate image: {str(e) or type(e).__name__}"
            self.logger.error(f"❌ Scene {scene.scene_number}: {message}")
            # as_error 不改动 image_url，旧图保留
            updated = pending.as_error(message)
        else:
            updated = pending.as_completed(
                image.image_url,
                pool_index=None,
                visual_prompt=image.prompt_used,
            )
            self.logger.info(f"✅ Scene {scene.scene_number} regenerated")

        if on_update:
            on_update(updated)
        return updated

    async def retry_failed(self, scenes: Sequence[StoryboardScene],
                           on_update: Optional[SceneCallback] = None) -> List[StoryboardScene]:
        """按顺序重试所有 error 状态的场景，返回更新后的完整列表"""
        failed = [s for s in scenes if s.generation_status == GenerationStatus.ERROR]
        if not failed:
            return list(scenes)

        self.logger.info(f"🔁 Retrying {len(failed)} failed scenes")
        updated = {}
        for scene in failed:
            updated[scene.scene_number] = await self.regenerate(scene, on_update=on_update)

        return [updated.get(s.scene_number, s) for s in scenes]
