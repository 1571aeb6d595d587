"""
图像池生成器 - 只为前K个场景生成图片，再把图片池随机分配给全部场景

K = min(场景数, 上限)。K个请求并发发出，全部结束后统一进行分配，
因此分配阶段看到的池是完整且不再变化的。分配会覆盖前K个场景自己的图片。
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from core.config_manager import ConfigManager
from media.image_generator import ImageGenerator, ImageGenerationRequest, GeneratedImage
from utils.structured_output_models import Scene, StoryboardScene, GenerationStatus

NO_POOLED_IMAGE = "No pooled image available"

SceneListCallback = Callable[[List[StoryboardScene]], None]


def build_pool_assignment(scene_count: int, pool_size: int, seed: Optional[int] = None) -> List[int]:
    """
    计算每个场景使用的池索引

    打乱 range(pool_size) 后按 shuffled[i % pool_size] 循环分配，
    每个池索引被使用的次数相差不超过1。相同seed得到相同结果。
    """
    if scene_count < 0 or pool_size < 0:
        raise ValueError("scene_count and pool_size must be non-negative")
    if pool_size == 0:
        return []

    shuffled = list(range(pool_size))
    random.Random(seed).shuffle(shuffled)
    return [shuffled[i % pool_size] for i in range(scene_count)]


def estimate_cost(scene_count: int, cap: int, unit_cost: float = 0.004) -> float:
    """实际生成的图片数 × 单价（美元）"""
    return min(scene_count, cap) * unit_cost


@dataclass
class PoolRunResult:
    """一次图像池运行的结果；部分失败不是异常，记录在 failed_indices"""
    scenes: List[StoryboardScene]
    pool_urls: List[Optional[str]]
    failed_indices: List[int] = field(default_factory=list)
    assignment: List[int] = field(default_factory=list)
    estimated_cost: float = 0.0

    @property
    def generated_count(self) -> int:
        return sum(1 for url in self.pool_urls if url)

    @property
    def all_failed(self) -> bool:
        return bool(self.pool_urls) and self.generated_count == 0

    def summary(self) -> dict:
        statuses = [scene.generation_status for scene in self.scenes]
        return {
            'total_scenes': len(self.scenes),
            'pool_size': len(self.pool_urls),
            'generated': self.generated_count,
            'failed': len(self.failed_indices),
            'completed_scenes': statuses.count(GenerationStatus.COMPLETED),
            'error_scenes': statuses.count(GenerationStatus.ERROR),
            'estimated_cost': round(self.estimated_cost, 4),
        }


class ImagePoolGenerator:
    """图像池生成器"""

    def __init__(self, config_manager: ConfigManager,
                 image_generator: Optional[ImageGenerator] = None):
        self.config = config_manager
        self.pipeline = config_manager.get_pipeline_config()
        self.image_generator = image_generator or ImageGenerator(config_manager)
        self.logger = logging.getLogger('storyboard.media')

    def estimate_cost(self, scene_count: int, cap: Optional[int] = None) -> float:
        cap = self.pipeline.max_generated_images if cap is None else cap
        return estimate_cost(scene_count, cap, self.pipeline.image_unit_cost)

    async def generate_pool(self, scenes: Sequence[Scene], cap: Optional[int] = None,
                            on_update: Optional[SceneListCallback] = None,
                            seed: Optional[int] = None) -> PoolRunResult:
        """
        为场景列表生成图片池并分配

        Args:
            scenes: 分镜场景（按顺序）
            cap: 最多生成的图片数，默认 pipeline.max_generated_images
            on_update: 每次场景列表变化时收到一个新的列表快照
            seed: 分配用的随机种子（测试时固定）

        Returns:
            PoolRunResult: 不会因为单张图片失败而抛出异常
        """
        cap = self.pipeline.max_generated_images if cap is None else cap
        if cap <= 0:
            raise ValueError("cap must be positive")

        pool_size = min(len(scenes), cap)
        current = [StoryboardScene.from_scene(scene) for scene in scenes]
        pool_urls: List[Optional[str]] = [None] * pool_size

        def publish():
            if on_update:
                on_update(list(current))

        publish()
        if not current:
            return PoolRunResult(scenes=[], pool_urls=[])

        self.logger.info(f"🖼️ Generating image pool: {pool_size} images for {len(current)} scenes "
                         f"(estimated ${self.estimate_cost(len(current), cap):.3f})")

        async def generate_slot(index: int) -> GeneratedImage:
            scene = current[index]
            current[index] = scene.as_generating()
            publish()
            try:
                image = await self.image_generator.generate(
                    ImageGenerationRequest(prompt=scene.visual_prompt, scene_number=scene.scene_number)
                )
            except Exception as e:
                current[index] = current[index].as_error(str(e) or type(e).__name__)
                publish()
                raise
            pool_urls[index] = image.image_url
            current[index] = current[index].as_completed(image.image_url, pool_index=index)
            publish()
            return image

        results = await asyncio.gather(
            *(generate_slot(i) for i in range(pool_size)),
            return_exceptions=True,
        )

        failed_indices = [i for i, result in enumerate(results) if isinstance(result, BaseException)]
        for i in failed_indices:
            self.logger.warning(f"⚠️ Pool image {i} failed: {results[i]}")

        # 分配：全部场景（包括前K个）按打乱后的池索引循环取图；
        # 槽位为空时保留已有的终止状态，仍为pending的场景标记为error
        assignment = build_pool_assignment(len(current), pool_size, seed)
        for i in range(len(current)):
            pool_index = assignment[i]
            url = pool_urls[pool_index]
            if url:
                current[i] = current[i].as_completed(url, pool_index=pool_index)
            elif current[i].generation_status not in (GenerationStatus.COMPLETED, GenerationStatus.ERROR):
                current[i] = current[i].as_error(NO_POOLED_IMAGE)
        publish()

        result = PoolRunResult(
            scenes=list(current),
            pool_urls=pool_urls,
            failed_indices=failed_indices,
            assignment=assignment,
            estimated_cost=self.estimate_cost(len(current), cap),
        )

        if result.all_failed:
            self.logger.error(f"❌ All {pool_size} pool images failed")
        else:
            self.logger.info(f"✅ Image pool finished: {result.summary()}")

        return result
