"""
历史叙事分镜生成器

面向历史题材YouTube视频的制作流水线：
- 选题研究、三幕大纲与旁白终稿生成
- 文稿质量分析、改写与TTS排版
- 按旁白时长流式拆解分镜场景
- 油画风格场景图的图像池生成与单场景重绘

各子包（core / content / media / services / utils / tools）以项目根目录为导入根，
入口见 main.py。
"""

__version__ = "1.0.0"
__author__ = "历史叙事分镜系统"
