"""
历史叙事分镜生成器 - 主程序入口
"""
import asyncio
import argparse
import sys
from pathlib import Path
import json
from typing import Any, Dict, Optional
from datetime import datetime

# 添加项目根目录到Python路径
sys.path.insert(0, str(Path(__file__).parent))

# 加载环境变量
from tools.load_env import load_env_file
load_env_file()

from core.config_manager import ConfigManager
from services.storyboard_service import StoryboardService
from utils.result_types import Result
from utils.stream_aggregator import EVENT_COMPLETE, EVENT_ERROR
from utils.structured_output_models import HistoricalEra, ContentType, NarrativeTone


def _read_script(path: str) -> str:
    script_path = Path(path)
    if not script_path.exists():
        raise SystemExit(f"❌ 文稿文件不存在: {path}")
    return script_path.read_text(encoding='utf-8')


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, 'model_dump'):
        return value.model_dump(mode='json')
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    if hasattr(value, '__dataclass_fields__'):
        return {k: _to_jsonable(getattr(value, k)) for k in value.__dataclass_fields__}
    return value


def save_output(service: StoryboardService, command: str, payload: Dict[str, Any]) -> Path:
    """结果写入 general.output_dir/<command>_<时间戳>.json"""
    output_dir = Path(service.config.get('general.output_dir', 'output'))
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"{command}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.json"
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(_to_jsonable(payload), f, ensure_ascii=False, indent=2, default=str)
    return output_path


def _report(service: StoryboardService, command: str, result: Result) -> bool:
    if result.is_error():
        print(f"❌ {command} 失败 [{result.error_kind}]: {result.error}")
        return False

    if result.has_warning():
        print(f"⚠️ {result.error}")
    path = save_output(service, command, {'data': result.data, 'metadata': result.metadata})
    print(f"✅ {command} 完成，结果已保存: {path}")
    return True


async def run_breakdown(service: StoryboardService, script: str, quiet: bool = False) -> Optional[list]:
    """流式拆解并打印进度，返回场景列表（失败返回None）"""
    async for event in service.start_breakdown(script):
        if event.type == EVENT_COMPLETE:
            print(f"\n🎬 生成 {len(event.data)} 个场景 (目标 {event.metadata.get('target_scene_count')})")
            return event.data
        if event.type == EVENT_ERROR:
            print(f"\n❌ 分镜拆解失败 [{event.error_kind}]: {event.error}")
            if event.raw_excerpt:
                print(f"原始输出片段: {event.raw_excerpt[:200]}")
            return None
        if not quiet:
            print(f"\r⏳ 已接收 {len(event.text)} 字符", end='', flush=True)
    return None


async def cmd_breakdown(service: StoryboardService, args) -> bool:
    scenes = await run_breakdown(service, _read_script(args.script))
    if scenes is None:
        return False
    path = save_output(service, 'breakdown', {'scenes': scenes})
    print(f"✅ 分镜已保存: {path}")
    return True


async def cmd_storyboard(service: StoryboardService, args) -> bool:
    scenes = await run_breakdown(service, _read_script(args.script))
    if scenes is None:
        return False

    cost = service.estimate_image_cost(len(scenes), args.cap)
    print(f"🖼️ 预计图片费用: ${cost:.3f}")

    def on_update(snapshot):
        progress = service.session.state.scene_generation_progress
        print(f"\r⏳ 场景进度 {progress:.0%}", end='', flush=True)

    result = await service.start_image_pool(scenes, cap=args.cap, on_update=on_update, seed=args.seed)
    print()
    if result.is_success() and args.retry_failed and result.data.failed_indices:
        retry = await service.retry_failed_scenes()
        print(f"🔁 重试结果: {retry.metadata}")
        result = Result.success(service.session.state.storyboard_scenes, result.metadata)
    return _report(service, 'storyboard', result)


async def cmd_enhance(service: StoryboardService, args) -> bool:
    def on_event(event):
        if event.type == "stage":
            print(f"\n📍 {event.state.value}")
        elif event.type == "progress":
            print(f"\r⏳ 已排版 {len(event.text)} 字符", end='', flush=True)

    result = await service.run_enhancement_pipeline(_read_script(args.script), on_event=on_event)
    print()
    return _report(service, 'enhance', result)


async def cmd_narrative(service: StoryboardService, args) -> bool:
    params = {
        'title': args.title,
        'era': args.era,
        'content_type': args.content_type,
        'tone': args.tone,
        'target_duration': args.duration,
    }
    result = await service.run_narrative_orchestrator(
        params, on_state=lambda state: print(f"📍 {state.value}")
    )
    if result.is_success():
        result = Result.success(service.narrative.serialize(result.data), result.metadata)
    return _report(service, 'narrative', result)


COMMANDS = {
    'breakdown': cmd_breakdown,
    'storyboard': cmd_storyboard,
    'enhance': cmd_enhance,
    'narrative': cmd_narrative,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="历史叙事分镜生成器 - 研究、文稿、分镜与场景图",
        epilog="""
使用示例:
  分镜拆解:   python main.py breakdown --script script.txt
  完整分镜:   python main.py storyboard --script script.txt --cap 60
  文稿增强:   python main.py enhance --script script.txt
  历史叙事:   python main.py narrative --title 'Crossing the Rubicon' --era 'Roman Republic' \\
                  --content-type Battle --tone Epic --duration 10
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--config", type=str, default="config/settings.json", help="配置文件路径")
    subparsers = parser.add_subparsers(dest="command", required=True)

    breakdown = subparsers.add_parser("breakdown", help="将文稿拆解为场景")
    breakdown.add_argument("--script", required=True, help="文稿文本文件")

    storyboard = subparsers.add_parser("storyboard", help="拆解文稿并生成图像池")
    storyboard.add_argument("--script", required=True, help="文稿文本文件")
    storyboard.add_argument("--cap", type=int, default=None, help="最多生成的图片数 (默认: 60)")
    storyboard.add_argument("--seed", type=int, default=None, help="图片分配随机种子")
    storyboard.add_argument("--retry-failed", action="store_true", help="完成后顺序重试失败场景")

    enhance = subparsers.add_parser("enhance", help="分析、改写并排版文稿")
    enhance.add_argument("--script", required=True, help="文稿文本文件")

    narrative = subparsers.add_parser("narrative", help="研究选题并生成旁白终稿")
    narrative.add_argument("--title", required=True, help="选题标题")
    narrative.add_argument("--era", required=True, choices=[e.value for e in HistoricalEra])
    narrative.add_argument("--content-type", required=True, choices=[c.value for c in ContentType])
    narrative.add_argument("--tone", required=True, choices=[t.value for t in NarrativeTone])
    narrative.add_argument("--duration", type=float, default=10, help="目标时长（分钟，默认: 10）")

    return parser


def main(argv=None) -> int:
    """主程序入口"""
    args = build_parser().parse_args(argv)

    try:
        service = StoryboardService(ConfigManager(args.config))
    except RuntimeError as e:
        print(f"💥 {e}")
        return 1

    success = asyncio.run(COMMANDS[args.command](service, args))
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
